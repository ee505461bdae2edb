"""Fold position observations into canonical records.

Scrapes and vision extractions are decoupled in time: a position is scraped on
every rotation, but its token breakdown only arrives when that position was
expanded and the vision call succeeded. Non-breakdown fields therefore follow
plain recency, while breakdown fields only ever move forward among
observations that actually carried a breakdown.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from .models import CanonicalPosition, ExtractedBreakdown, Observation, ScrapedPosition
from .normalize import normalize_pair

logger = logging.getLogger(__name__)

DEFAULT_PERCENTAGE_TOLERANCE = 0.5


def position_key(
    protocol: str, pair: str | None, aliases: Mapping[str, str] | None = None
) -> str:
    """Key identifying one logical position, e.g. ``"orca::SOL/USDC"``."""
    return f"{protocol}::{normalize_pair(pair, aliases)}"


def percentages_valid(
    token0_percentage: float | None,
    token1_percentage: float | None,
    tolerance: float = DEFAULT_PERCENTAGE_TOLERANCE,
) -> bool:
    """Check 0 <= p0 + p1 <= 100 + tolerance, ignoring missing sides."""
    present = [p for p in (token0_percentage, token1_percentage) if p is not None]
    if any(p < 0 for p in present):
        return False
    if len(present) == 2 and sum(present) > 100 + tolerance:
        return False
    return True


def _usable_breakdown(
    incoming: ScrapedPosition,
    breakdown: ExtractedBreakdown | None,
    tolerance: float,
) -> ExtractedBreakdown | None:
    """Pick the breakdown this observation contributes, if any."""
    if breakdown is not None and not breakdown.is_complete:
        logger.debug("Dropping incomplete breakdown for %s", breakdown.pair)
        breakdown = None

    if breakdown is None and incoming.has_breakdown:
        breakdown = ExtractedBreakdown(
            pair=incoming.pair,
            extracted_at=incoming.captured_at,
            token0_amount=incoming.token0_amount,
            token1_amount=incoming.token1_amount,
            token0_percentage=incoming.token0_percentage,
            token1_percentage=incoming.token1_percentage,
        )

    if breakdown is None:
        return None

    if not percentages_valid(
        breakdown.token0_percentage, breakdown.token1_percentage, tolerance
    ):
        logger.warning(
            "Dropping breakdown for %s: percentages %s + %s out of bounds",
            breakdown.pair,
            breakdown.token0_percentage,
            breakdown.token1_percentage,
        )
        return None
    return breakdown


def _scrape_fields(incoming: ScrapedPosition) -> dict[str, Any]:
    """Non-breakdown fields to copy from a scrape onto the canonical record.

    An inverted range or a negative balance is stored as None. The result
    depends on the incoming scrape alone, so folding order never leaks in.
    """
    range_min, range_max = incoming.range_min, incoming.range_max
    if range_min is not None and range_max is not None and range_min > range_max:
        logger.warning(
            "Ignoring inverted range %s..%s for %s", range_min, range_max, incoming.pair
        )
        range_min, range_max = None, None

    balance = incoming.balance
    if balance is not None and balance < 0:
        logger.warning("Ignoring negative balance %s for %s", balance, incoming.pair)
        balance = None

    return {
        "pair": incoming.pair,
        "captured_at": incoming.captured_at,
        "token0": incoming.token0,
        "token1": incoming.token1,
        "balance": balance,
        "pending_yield": incoming.pending_yield,
        "apy": incoming.apy,
        "range_min": range_min,
        "range_max": range_max,
        "current_price": incoming.current_price,
        "in_range": incoming.in_range,
    }


def reconcile(
    existing: CanonicalPosition | None,
    incoming: ScrapedPosition,
    breakdown: ExtractedBreakdown | None = None,
    *,
    tolerance: float = DEFAULT_PERCENTAGE_TOLERANCE,
    aliases: Mapping[str, str] | None = None,
) -> CanonicalPosition:
    """Fold one observation into the canonical record for its key.

    Raises:
        ValueError: ``existing`` belongs to a different protocol or pair.
    """
    normalized = normalize_pair(incoming.pair, aliases)

    if existing is None:
        record = CanonicalPosition(
            protocol=incoming.protocol,
            normalized_pair=normalized,
            **_scrape_fields(incoming),
        )
    else:
        if (existing.protocol, existing.normalized_pair) != (incoming.protocol, normalized):
            raise ValueError(
                f"Cannot reconcile {incoming.protocol}::{normalized} "
                f"into {existing.key}"
            )
        record = existing
        if incoming.captured_at > existing.captured_at:
            record = replace(existing, **_scrape_fields(incoming))

    usable = _usable_breakdown(incoming, breakdown, tolerance)
    if usable is None:
        return record

    if (
        not record.has_breakdown
        or record.breakdown_at is None
        or usable.extracted_at > record.breakdown_at
    ):
        record = replace(
            record,
            token0_amount=usable.token0_amount,
            token1_amount=usable.token1_amount,
            token0_percentage=usable.token0_percentage,
            token1_percentage=usable.token1_percentage,
            breakdown_at=usable.extracted_at,
        )
    else:
        logger.debug(
            "Keeping breakdown from %s for %s; incoming one from %s is not newer",
            record.breakdown_at,
            record.key,
            usable.extracted_at,
        )
    return record


def reconcile_all(
    history: Iterable[Observation],
    *,
    tolerance: float = DEFAULT_PERCENTAGE_TOLERANCE,
    aliases: Mapping[str, str] | None = None,
) -> dict[str, CanonicalPosition]:
    """Fold a whole observation history, oldest first, into canonical records.

    Observations are ordered by scrape time, then by breakdown time for
    observations scraped at the same instant. The sort is stable, so exact
    ties keep their input order. The input is left untouched and no state
    survives between calls.
    """
    ordered = sorted(
        history, key=lambda obs: (obs.position.captured_at, obs.observed_at)
    )

    records: dict[str, CanonicalPosition] = {}
    for obs in ordered:
        key = position_key(obs.position.protocol, obs.position.pair, aliases)
        records[key] = reconcile(
            records.get(key),
            obs.position,
            obs.breakdown,
            tolerance=tolerance,
            aliases=aliases,
        )
    return records
