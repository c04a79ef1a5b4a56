"""Envelope stored next to every cached payload, and its string codec."""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from khetismart.results import Err, ErrorKind, Ok, Result


class CacheEntry(BaseModel):
    """``timestamp`` is the write time in epoch millis, never the data's own date."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: StrictInt
    data: Any


def encode(entry: CacheEntry) -> str:
    return json.dumps(
        {"timestamp": entry.timestamp, "data": entry.data},
        ensure_ascii=False,
        allow_nan=False,
    )


def decode(raw: Optional[str]) -> Result[CacheEntry]:
    """Parse a stored envelope; any malformed input becomes ``Err(DECODE)``."""
    if not isinstance(raw, str):
        return Err(ErrorKind.DECODE, "no stored value")
    try:
        parsed = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        return Err(ErrorKind.DECODE, f"invalid JSON: {exc}")

    if not isinstance(parsed, dict) or "data" not in parsed:
        return Err(ErrorKind.DECODE, "envelope is not a {timestamp, data} object")
    try:
        return Ok(CacheEntry.model_validate(parsed))
    except ValidationError as exc:
        return Err(ErrorKind.DECODE, f"invalid envelope: {exc.error_count()} error(s)")
