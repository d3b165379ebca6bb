"""
Centralized configuration for bagsmith.

Tool locations and runtime knobs come from environment variables with
sensible defaults. The data bag definitions come from a YAML file
(./config.yaml unless $BAGSMITH_CONFIG points elsewhere).

Usage:
    from bagsmith.config import get_config, load_databags
    cfg = get_config()
    databags = load_databags(cfg.config_path)
    print(databags["mysql"].trousseau_store)   # "mysql/trousseau.asc"
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import ValidationError

from bagsmith.databag.models import DataBagEntry

logger = logging.getLogger(__name__)

# Subcommand names that a data bag may not shadow
RESERVED_COMMANDS = frozenset({"list", "passphrase", "version"})


class ConfigError(Exception):
    """The data bag configuration file is missing or malformed."""


@dataclass(frozen=True)
class ToolsConfig:
    """External binaries and how long any single call may take."""

    trousseau_bin: str = "trousseau"
    knife_bin: str = "knife"
    ssh_bin: str = "ssh"
    ssh_options: tuple[str, ...] = ()
    timeout: float = 60.0


@dataclass(frozen=True)
class Config:
    """Top-level bagsmith configuration."""

    config_path: Path = field(default_factory=lambda: Path("config.yaml"))
    tools: ToolsConfig = field(default_factory=ToolsConfig)

    # Remote secret file ownership
    secret_owner: str = "root:root"

    # Bytes of entropy in a generated data_bag_secret
    secret_length: int = 512


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    tools = ToolsConfig(
        trousseau_bin=os.environ.get("BAGSMITH_TROUSSEAU_BIN", "trousseau"),
        knife_bin=os.environ.get("BAGSMITH_KNIFE_BIN", "knife"),
        ssh_bin=os.environ.get("BAGSMITH_SSH_BIN", "ssh"),
        ssh_options=tuple(shlex.split(os.environ.get("BAGSMITH_SSH_OPTIONS", ""))),
        timeout=float(os.environ.get("BAGSMITH_TIMEOUT", "60")),
    )

    return Config(
        config_path=Path(os.environ.get("BAGSMITH_CONFIG", "config.yaml")),
        tools=tools,
        secret_owner=os.environ.get("BAGSMITH_SECRET_OWNER", "root:root"),
        secret_length=int(os.environ.get("BAGSMITH_SECRET_LENGTH", "512")),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None


def load_databags(path: Path | str) -> dict[str, DataBagEntry]:
    """Load and validate every data bag definition in a YAML config file.

    Missing fields get their defaults (see DataBagEntry.from_config).
    Raises ConfigError when the file is missing, is not a mapping, or
    holds an invalid entry.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as fp:
            raw = yaml.safe_load(fp)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        logger.warning("Config file %s is empty", path)
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must map data bag names to settings")

    databags: dict[str, DataBagEntry] = {}
    for name, settings in raw.items():
        name = str(name)
        if name in RESERVED_COMMANDS:
            raise ConfigError(f"{path}: '{name}' is a reserved command name")
        if settings is not None and not isinstance(settings, dict):
            raise ConfigError(f"{path}: settings for '{name}' must be a mapping")
        try:
            databags[name] = DataBagEntry.from_config(name, settings)
        except ValidationError as e:
            raise ConfigError(f"{path}: invalid data bag '{name}':\n{e}") from e

    logger.debug("Loaded %d data bag(s) from %s", len(databags), path)
    return databags
