"""
advance_engines.tracer -- ADVANCE_ENGINE_TRACE records for pure engine calls.

``@traced_engine`` wraps an engine function and, after each call, logs one
DEBUG record naming the engine, its version, the wall time spent and an
input fingerprint: the first 16 hex characters of a SHA-256 over the
selected arguments rendered as canonical JSON.  Two calls with equal inputs
-- whether passed positionally or by keyword -- share a fingerprint, which
lets an exposure snapshot or a reconciliation be matched to the inputs that
produced it.

Arguments the caller did not pass are fingerprinted as ``null``; defaults
are not filled in.  The wrapper adds no I/O beyond the log record and lets
engine exceptions propagate untouched.

Usage:
    @traced_engine("reconciliation", "1.0", fingerprint_fields=("amount_requested",))
    def reconcile(amount_requested, items):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from advance_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _plain(value: Any) -> Any:
    """Reduce ``value`` to JSON-native types with a stable rendering."""
    if is_dataclass(value) and not isinstance(value, type):
        return _plain(asdict(value))
    if isinstance(value, Enum):
        return _plain(value.value)
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_plain(v) for v in value]
        return sorted(items, key=repr) if isinstance(value, (set, frozenset)) else items
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix over ``arguments`` restricted to ``fingerprint_fields``."""
    selected = {name: _plain(arguments.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorate a pure engine function with ADVANCE_ENGINE_TRACE logging."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, dict(bound.arguments))

            started = time.monotonic()
            result = func(*args, **kwargs)

            _logger.debug("ADVANCE_ENGINE_TRACE", extra={
                "trace_type": "ADVANCE_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
                "function": func.__qualname__,
            })
            return result

        return wrapper

    return decorator
