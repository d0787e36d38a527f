"""
advance_config -- configuration sets for the cash advance system.

Responsibility:
    Resolves the active spending policy and module settings from a
    configuration set directory.  A configuration set is a directory
    holding ``policy.yaml`` and ``advance.yaml``; the shipped set lives
    in ``advance_config/sets/default/``.

Architecture position:
    Configuration -- above ``advance_kernel`` and the module models, below
    callers that assemble an ``AdvanceLifecycleService``.  The kernel and
    engines MUST NEVER import from ``advance_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration set or a file in it is
      missing.
    - ``ValueError`` / ``KeyError`` -- schema failures from the loader.
"""

from __future__ import annotations

from pathlib import Path

from advance_config.loader import (
    ADVANCE_CONFIG_FILE,
    POLICY_FILE,
    load_advance_config,
    load_policy,
)
from advance_kernel.logging_config import get_logger
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.models import Policy

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SET = "default"


def _set_dir(config_dir: Path | str | None, set_name: str) -> Path:
    directory = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR / set_name
    if not directory.is_dir():
        raise FileNotFoundError(f"Configuration set not found: {directory}")
    return directory


def get_active_policy(config_dir: Path | str | None = None, set_name: str = DEFAULT_SET) -> Policy:
    """
    The spending policy of a configuration set.

    Args:
        config_dir: Directory holding ``policy.yaml``.  Defaults to the
            shipped ``sets/<set_name>`` directory.
        set_name: Configuration set used when ``config_dir`` is None.
    """
    directory = _set_dir(config_dir, set_name)
    policy = load_policy(directory / POLICY_FILE)
    _logger.info("ADVANCE_CONFIG_TRACE", extra={
        "trace_type": "ADVANCE_CONFIG_TRACE",
        "config_dir": str(directory),
        "policy_id": policy.id,
    })
    return policy


def get_advance_config(config_dir: Path | str | None = None, set_name: str = DEFAULT_SET) -> AdvanceConfig:
    """
    Module settings of a configuration set.

    Falls back to ``AdvanceConfig.with_defaults()`` when the set has no
    ``advance.yaml``.
    """
    directory = _set_dir(config_dir, set_name)
    path = directory / ADVANCE_CONFIG_FILE
    if not path.exists():
        return AdvanceConfig.with_defaults()
    return load_advance_config(path)


__all__ = [
    "get_active_policy",
    "get_advance_config",
    "load_policy",
    "load_advance_config",
]
