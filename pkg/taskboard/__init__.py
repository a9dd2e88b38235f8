# Task board engine: status transitions, cascading filters, search merge
#
# Components:
#   schema.py      - Data model (Task, Project, Client, Activity) and status vocabularies
#   store.py       - SQLite persistence layer
#   source.py      - Async task sources (local store, board server over HTTP)
#   cache.py       - Query cache with invalidate-and-refetch
#   events.py      - Event bus for user-visible notifications
#   transitions.py - Drag-and-drop status transitions
#   filters.py     - Cascading filter resolver and BoardView
#   search.py      - Search/filter merge with last-issued-query-wins
#   board.py       - Board session wiring the above together
#   config.py      - YAML + environment configuration
