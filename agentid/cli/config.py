# agentid/cli/config.py
"""
CLI configuration: ~/.agentid/config.json plus environment overrides.

The library itself never reads any of this; only the command-line layer does.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from agentid.storage import default_db_path, default_home


@dataclass
class CLIConfig:
    did: Optional[str] = None
    private_key_path: Optional[str] = None
    public_key_path: Optional[str] = None
    registry_url: Optional[str] = None


def config_dir() -> Path:
    return default_home()


def config_path() -> Path:
    return config_dir() / "config.json"


def keys_dir() -> Path:
    return config_dir() / "keys"


def load_config() -> CLIConfig:
    """Missing file -> empty config. Unreadable JSON is an error."""
    path = config_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return CLIConfig()
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to load config {path}: {e}") from e

    known = {f.name for f in fields(CLIConfig)}
    return CLIConfig(**{k: v for k, v in data.items() if k in known})


def save_config(config: CLIConfig) -> Path:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(config), indent=2), encoding="utf-8")
    return path


def update_config(**changes) -> CLIConfig:
    config = load_config()
    for key, value in changes.items():
        if value is not None:
            setattr(config, key, value)
    save_config(config)
    return config


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. AGENTID_DB_PATH environment variable
    3. Default: <config dir>/agentid.db
    """
    path = (db_flag or default_db_path()).resolve()

    path.parent.mkdir(parents=True, exist_ok=True)
    return path
