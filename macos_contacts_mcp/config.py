"""
Configuration module for the Contacts MCP server.

Handles path resolution, logging setup, and configuration loading.
MCP servers are started from arbitrary working directories, so relative
paths are always resolved against this package, never the CWD.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Package directory (for resolving relative paths)
PACKAGE_ROOT = Path(__file__).parent

DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config" / "mcp_server.json"
LOG_FILE_NAME = "mcp_server.log"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Environment overrides
CONFIG_PATH_ENV = "CONTACTS_MCP_CONFIG"
LOG_LEVEL_ENV = "CONTACTS_MCP_LOG_LEVEL"

logger = logging.getLogger(__name__)


def resolve_path(path_str: str) -> Path:
    """
    Resolve a config path relative to PACKAGE_ROOT or expand ~.

    Args:
        path_str: Path string from config (may be relative or use ~)

    Returns:
        Resolved absolute Path
    """
    path = Path(path_str).expanduser()

    if not path.is_absolute():
        path = PACKAGE_ROOT / path

    return path.resolve()


def _load_json(file_path: Path) -> Dict[str, Any]:
    """Load a JSON config file."""
    with open(file_path, 'r') as f:
        return json.load(f)


def load_config(config_path: Optional[str] = None, overrides: bool = True) -> Dict[str, Any]:
    """
    Load server configuration.

    The packaged defaults are always loaded first. An override file, given
    explicitly or through CONTACTS_MCP_CONFIG, is merged over them one
    section deep, so it only needs to carry the keys it changes.

    Args:
        config_path: Optional path to an override config file
        overrides: Apply the override file and environment variables.
            With False only the packaged defaults are returned.

    Returns:
        Merged configuration dict

    Raises:
        OSError: If the override file cannot be read
        ValueError: If the override file is not valid JSON
    """
    config = _load_json(DEFAULT_CONFIG_PATH)
    if not overrides:
        return config

    override_path = config_path or os.getenv(CONFIG_PATH_ENV)
    if override_path:
        override = _load_json(resolve_path(override_path))
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value

    level = os.getenv(LOG_LEVEL_ENV)
    if level:
        config.setdefault("logging", {})["level"] = level.upper()

    return config


def setup_logging(config: Dict[str, Any], level: Optional[str] = None) -> None:
    """
    Configure root logging for the server process.

    Logs go to a file under the configured log directory and to stderr.
    stdout is reserved for the MCP stdio transport.

    Args:
        config: Loaded configuration
        level: Optional level name overriding the configured one
    """
    level_name = (level or config.get("logging", {}).get("level", "INFO")).upper()

    handlers = [logging.StreamHandler(sys.stderr)]
    log_dir_warning = None

    log_dir = resolve_path(config["paths"]["log_dir"])
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / LOG_FILE_NAME))
    except OSError as e:
        log_dir_warning = f"File logging disabled, cannot use {log_dir}: {e}"

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )

    if log_dir_warning:
        logger.warning(log_dir_warning)
