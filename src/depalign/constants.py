"""Constants and configuration loading used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    EXIT_WARNINGS = 3
    RESOLUTION_FAILURE = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "DEPALIGN_LOG_LEVEL"
    ENV_CONFIG = "DEPALIGN_CONFIG"
    CONFIG_FILE_NAMES = ("depalign.yml", "depalign.yaml")
    USER_CONFIG_DIR = os.path.join("~", ".config", "depalign")

    # Resolution tunables
    MAX_WORKERS = 8
    LOOKUP_TIMEOUT_SEC = 30.0
    FAIL_ON_VERSION_CONFLICT = False
    FAIL_ON_NON_REPRODUCIBLE_RESOLUTION = False

    # Declaring configurations inherited by the default resolvable ones
    DEFAULT_CONFIGURATIONS = {
        "compileClasspath": ("api", "implementation", "compileOnly"),
        "runtimeClasspath": ("api", "implementation", "runtimeOnly"),
    }


def _default_config_paths():
    paths = []
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        paths.append(env_path)
    paths.extend(Constants.CONFIG_FILE_NAMES)
    user_dir = os.path.expanduser(Constants.USER_CONFIG_DIR)
    paths.extend(os.path.join(user_dir, name) for name in Constants.CONFIG_FILE_NAMES)
    return paths


def load_yaml_file(path: str) -> Dict[str, Any]:
    """Load a YAML (or JSON) mapping from ``path``.

    Raises:
        OSError: when the file cannot be read.
        ValueError: when the document is not a mapping or cannot be parsed.
    """
    with open(path, "r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValueError(f"Could not parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Return the user configuration mapping.

    An explicit path must exist; otherwise the first existing default location
    (``$DEPALIGN_CONFIG``, ``./depalign.yml``, ``~/.config/depalign/depalign.yml``)
    is used. Returns an empty dict when no config file is found.
    """
    if path:
        return load_yaml_file(path)
    for candidate in _default_config_paths():
        if os.path.isfile(candidate):
            logger.debug("Loading configuration from %s", candidate)
            return load_yaml_file(candidate)
    return {}


def default_policy_settings(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge defaults with the ``policy`` and ``resolution`` sections of a config mapping."""
    settings: Dict[str, Any] = {
        "fail_on_version_conflict": Constants.FAIL_ON_VERSION_CONFLICT,
        "fail_on_non_reproducible_resolution": Constants.FAIL_ON_NON_REPRODUCIBLE_RESOLUTION,
        "max_workers": Constants.MAX_WORKERS,
        "lookup_timeout": Constants.LOOKUP_TIMEOUT_SEC,
    }
    config = config or {}
    for section in ("policy", "resolution"):
        values = config.get(section)
        if isinstance(values, dict):
            settings.update({k: v for k, v in values.items() if k in settings})
    return settings
