"""
treasury_engines.tracer -- TREASURY_ENGINE_TRACE records for engine calls.

``@traced_engine`` logs one record per call of a pure engine function: the
engine name and version, a fingerprint of the keyword inputs named in
``fingerprint_fields``, what came out (via ``describe``) or which
TreasuryError code was raised, and the duration.  Given the trace and the
template set, a template resolution can be replayed and compared.

The decorator only logs.  Inputs are not touched and exceptions propagate
unchanged.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

_logger = logging.getLogger("treasury_kernel.engines.tracer")


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        # 500 and 500.00 are the same amount
        return format(value.normalize(), "f")
    if isinstance(value, (UUID, str)):
        return str(value)
    if isinstance(value, Mapping):
        return "{" + ",".join(f"{k}:{_canonical(value[k])}" for k in sorted(value)) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of a SHA-256 over ``field=value`` pairs."""
    canonical = "|".join(f"{f}={_canonical(kwargs.get(f))}" for f in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    describe: Callable[[Any], Mapping[str, Any]] | None = None,
) -> Callable:
    """Wrap an engine function so each call emits TREASURY_ENGINE_TRACE.

    Args:
        engine_name: Stable name used to filter traces.
        engine_version: Bumped whenever the engine's decisions change.
        fingerprint_fields: Keyword arguments hashed into the fingerprint.
        describe: Maps the return value to extra trace fields.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "trace_type": "TREASURY_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs),
            }
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                code = getattr(exc, "code", None)
                if code is not None:
                    trace["outcome"] = code
                    trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                    _logger.info("TREASURY_ENGINE_TRACE", extra=trace)
                raise

            trace["outcome"] = "ok"
            trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
            if describe is not None:
                trace.update(describe(result))
            _logger.info("TREASURY_ENGINE_TRACE", extra=trace)
            return result

        return wrapper

    return decorator
