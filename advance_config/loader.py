"""
Configuration Loader (``advance_config.loader``).

Responsibility
--------------
Loads YAML files from a configuration set and parses them into the typed
``Policy`` and ``AdvanceConfig`` objects used at runtime.

Architecture position
---------------------
**Config layer** -- sits above ``advance_kernel`` and the advances module
models.  Nothing in the kernel or engines imports from here.

Invariants enforced
-------------------
* YAML is read with ``yaml.safe_load`` only.
* Money values are parsed into ``Decimal`` through ``to_money``; YAML
  floats never reach an amount unconverted.
* Missing required keys raise; there are no silent defaults for them.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from the dataclass validators.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from advance_kernel.db.types import to_money
from advance_kernel.logging_config import get_logger
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.models import Policy, PolicyCategoryRule

logger = get_logger("config.loader")

POLICY_FILE = "policy.yaml"
ADVANCE_CONFIG_FILE = "advance.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _optional_money(value: Any):
    return to_money(value) if value is not None else None


def parse_category_rule(data: dict[str, Any]) -> PolicyCategoryRule:
    """Parse a ``PolicyCategoryRule`` from a dict."""
    return PolicyCategoryRule(
        category=data["category"],
        per_diem=_optional_money(data.get("per_diem")),
        receipt_required_over_amount=_optional_money(data.get("receipt_required_over_amount")),
    )


def parse_policy(data: dict[str, Any]) -> Policy:
    """
    Parse a ``Policy`` from a dict.

    ``retirement_deadline_days`` is required; ``id`` and ``name`` fall back
    to the ``Policy`` defaults.
    """
    kwargs: dict[str, Any] = {
        "retirement_deadline_days": int(data["retirement_deadline_days"]),
        "receipt_required_over_amount": _optional_money(data.get("receipt_required_over_amount")),
        "categories": tuple(parse_category_rule(c) for c in data.get("categories") or ()),
    }
    if data.get("id"):
        kwargs["id"] = str(data["id"])
    if data.get("name"):
        kwargs["name"] = str(data["name"])
    return Policy(**kwargs)


def load_policy(path: Path | str) -> Policy:
    """Load a ``Policy`` from a YAML file."""
    path = Path(path)
    policy = parse_policy(load_yaml_file(path))
    logger.info("policy_loaded", extra={
        "path": str(path),
        "policy_id": policy.id,
        "category_count": len(policy.categories),
        "retirement_deadline_days": policy.retirement_deadline_days,
    })
    return policy


def load_advance_config(path: Path | str) -> AdvanceConfig:
    """Load an ``AdvanceConfig`` from a YAML file."""
    path = Path(path)
    return AdvanceConfig.from_dict(load_yaml_file(path))
