# Task board configuration
# Override paths and endpoints via taskdash.yaml or environment variables.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

CONFIG_PATH = Path.cwd() / "taskdash.yaml"


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the board server and clients."""

    # Local store
    db_path: str = "~/.local/share/taskdash/tasks.db"

    # Board server
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""

    # Remote client (None = use the local store)
    server_url: Optional[str] = None
    request_timeout: float = 5.0

    # Limits
    search_limit: int = 200
    activity_limit: int = 50

    def apply_env(self):
        """Environment variables win over file values."""
        if os.environ.get("TASKDASH_DB"):
            self.db_path = os.environ["TASKDASH_DB"]
        if os.environ.get("TASKDASH_API_SECRET"):
            self.api_secret = os.environ["TASKDASH_API_SECRET"]
        if os.environ.get("TASKDASH_SERVER_URL"):
            self.server_url = os.environ["TASKDASH_SERVER_URL"]
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            known = {f.name for f in fields(cls)}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        cfg.apply_env()
        return cfg
