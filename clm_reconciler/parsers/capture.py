"""Pure parsing of raw capture, DB-row and vision JSON into models — no I/O.

Scraped values arrive in two spellings: camelCase from the page scraper
(``rangeMin``, ``capturedAt``) and snake_case from stored rows
(``range_min``, ``captured_at``). Numbers may still carry UI formatting.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from ..models import (
    CanonicalPosition,
    Capture,
    ExtractedBreakdown,
    Observation,
    ScrapedPosition,
)

_NUMBER_JUNK_RE = re.compile(r"[\s$,%]")


def _get(raw: dict[str, Any], *names: str) -> Any:
    """First non-None value among the given key spellings."""
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def to_float(value: Any) -> float | None:
    """Parse a number that may be formatted, e.g. "$1,234.50" or "12.5%".

    Unparsable input yields None rather than raising.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = _NUMBER_JUNK_RE.sub("", value)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "in range"):
            return True
        if lowered in ("false", "no", "0", "out of range"):
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 (``Z`` suffix allowed) or epoch seconds/milliseconds.

    Naive timestamps are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        ts = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _split_raw_pair(pair: str) -> tuple[str | None, str | None]:
    parts = [p.strip() for p in pair.split("/")]
    if len(parts) == 2:
        return parts[0] or None, parts[1] or None
    return None, None


def parse_position(
    raw: dict[str, Any],
    protocol: str | None = None,
    captured_at: datetime | None = None,
) -> ScrapedPosition:
    """Build a ScrapedPosition from a scraper dict or a stored row.

    ``protocol`` and ``captured_at`` fill in for values the row lacks.

    Raises:
        ValueError: no pair, protocol or capture time can be determined.
    """
    pair = _get(raw, "pair")
    if not pair:
        raise ValueError("Position has no pair")
    pair = str(pair).strip()

    proto = _get(raw, "protocol") or protocol
    if not proto:
        raise ValueError(f"Position {pair} has no protocol")

    ts = parse_timestamp(_get(raw, "capturedAt", "captured_at")) or captured_at
    if ts is None:
        raise ValueError(f"Position {pair} has no capture time")

    fallback0, fallback1 = _split_raw_pair(pair)
    return ScrapedPosition(
        protocol=str(proto).lower(),
        pair=pair,
        captured_at=ts,
        token0=_get(raw, "token0") or fallback0,
        token1=_get(raw, "token1") or fallback1,
        balance=to_float(_get(raw, "balance")),
        pending_yield=to_float(_get(raw, "pendingYield", "pending_yield")),
        apy=to_float(_get(raw, "apy")),
        range_min=to_float(_get(raw, "rangeMin", "range_min")),
        range_max=to_float(_get(raw, "rangeMax", "range_max")),
        current_price=to_float(_get(raw, "currentPrice", "current_price")),
        in_range=to_bool(_get(raw, "inRange", "in_range")),
        token0_amount=to_float(_get(raw, "token0Amount", "token0_amount")),
        token1_amount=to_float(_get(raw, "token1Amount", "token1_amount")),
        token0_percentage=to_float(_get(raw, "token0Percentage", "token0_percentage")),
        token1_percentage=to_float(_get(raw, "token1Percentage", "token1_percentage")),
    )


def _capture_positions(raw: dict[str, Any]) -> list[dict[str, Any]]:
    content = (raw.get("data") or {}).get("content") or {}
    clm = content.get("clmPositions") or {}
    positions = clm.get("positions")
    if positions is None:
        positions = raw.get("positions")
    return list(positions or [])


def parse_capture(raw: dict[str, Any] | list[dict[str, Any]]) -> Capture:
    """Build a Capture from a stored capture record.

    Accepts the nested ``data.content.clmPositions.positions`` layout written
    by the scraper, or a flat ``{"positions": [...]}``. A list uses its first
    element.

    Raises:
        ValueError: the record is empty, or has no protocol or timestamp.
    """
    if isinstance(raw, list):
        if not raw:
            raise ValueError("Empty capture list")
        raw = raw[0]

    data = raw.get("data") or {}
    protocol = raw.get("protocol") or data.get("protocol")
    if not protocol:
        raise ValueError("Capture has no protocol")
    protocol = str(protocol).lower()

    captured_at = parse_timestamp(_get(raw, "timestamp", "capturedAt", "captured_at"))
    if captured_at is None:
        raise ValueError("Capture has no timestamp")

    positions = tuple(
        parse_position(p, protocol=protocol, captured_at=captured_at)
        for p in _capture_positions(raw)
        if p.get("pair")
    )
    return Capture(
        protocol=protocol,
        captured_at=captured_at,
        positions=positions,
        url=raw.get("url") or data.get("url") or "",
        title=raw.get("title") or data.get("title") or "",
    )


def parse_breakdown(
    raw: dict[str, Any] | None, extracted_at: datetime | None = None
) -> ExtractedBreakdown | None:
    """Build an ExtractedBreakdown from the vision model's JSON answer.

    Returns None for the ``{"error": ...}`` "no expanded position" answer and
    for answers that do not name a pair.
    """
    if not raw or raw.get("error"):
        return None
    pair = raw.get("pair")
    if not pair:
        return None

    ts = parse_timestamp(_get(raw, "extractedAt", "extracted_at")) or extracted_at
    if ts is None:
        ts = datetime.now(timezone.utc)

    return ExtractedBreakdown(
        pair=str(pair).strip(),
        extracted_at=ts,
        token0_amount=to_float(_get(raw, "token0Amount", "token0_amount")),
        token1_amount=to_float(_get(raw, "token1Amount", "token1_amount")),
        token0_percentage=to_float(_get(raw, "token0Percentage", "token0_percentage")),
        token1_percentage=to_float(_get(raw, "token1Percentage", "token1_percentage")),
        token0=_get(raw, "token0"),
        token1=_get(raw, "token1"),
    )


def parse_observation(raw: dict[str, Any]) -> Observation:
    """Build an Observation from ``{"position": {...}, "breakdown": {...}}``."""
    position = parse_position(raw.get("position") or {})
    breakdown = parse_breakdown(raw.get("breakdown"), extracted_at=position.captured_at)
    return Observation(position=position, breakdown=breakdown)


# ---------------------------------------------------------------------------
# Model → JSON-ready dicts
# ---------------------------------------------------------------------------


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def position_to_dict(position: ScrapedPosition) -> dict[str, Any]:
    return {
        "protocol": position.protocol,
        "pair": position.pair,
        "token0": position.token0,
        "token1": position.token1,
        "balance": position.balance,
        "pending_yield": position.pending_yield,
        "apy": position.apy,
        "range_min": position.range_min,
        "range_max": position.range_max,
        "current_price": position.current_price,
        "in_range": position.in_range,
        "token0_amount": position.token0_amount,
        "token1_amount": position.token1_amount,
        "token0_percentage": position.token0_percentage,
        "token1_percentage": position.token1_percentage,
        "captured_at": _iso(position.captured_at),
    }


def breakdown_to_dict(breakdown: ExtractedBreakdown) -> dict[str, Any]:
    return {
        "pair": breakdown.pair,
        "token0": breakdown.token0,
        "token1": breakdown.token1,
        "token0_amount": breakdown.token0_amount,
        "token1_amount": breakdown.token1_amount,
        "token0_percentage": breakdown.token0_percentage,
        "token1_percentage": breakdown.token1_percentage,
        "extracted_at": _iso(breakdown.extracted_at),
    }


def canonical_to_dict(record: CanonicalPosition) -> dict[str, Any]:
    return {
        "key": record.key,
        "protocol": record.protocol,
        "pair": record.pair,
        "normalized_pair": record.normalized_pair,
        "token0": record.token0,
        "token1": record.token1,
        "balance": record.balance,
        "pending_yield": record.pending_yield,
        "apy": record.apy,
        "range_min": record.range_min,
        "range_max": record.range_max,
        "current_price": record.current_price,
        "in_range": record.in_range,
        "token0_amount": record.token0_amount,
        "token1_amount": record.token1_amount,
        "token0_percentage": record.token0_percentage,
        "token1_percentage": record.token1_percentage,
        "has_breakdown": record.has_breakdown,
        "captured_at": _iso(record.captured_at),
        "breakdown_at": _iso(record.breakdown_at),
    }
