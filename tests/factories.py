"""Model builders shared by the test modules."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from clm_reconciler.models import ExtractedBreakdown, ScrapedPosition

T0 = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    """Timestamp ``minutes`` after the shared base time."""
    return T0 + timedelta(minutes=minutes)


def make_position(pair: str = "cbBTC/USDC0", minutes: float = 0, **overrides) -> ScrapedPosition:
    fields = dict(
        protocol="orca",
        pair=pair,
        captured_at=at(minutes),
        balance=10000.0,
        pending_yield=12.5,
        apy=8.0,
        range_min=95.0,
        range_max=105.0,
        current_price=100.0,
        in_range=True,
    )
    fields.update(overrides)
    return ScrapedPosition(**fields)


def make_breakdown(pair: str = "cbBTC/USDC", minutes: float = 0, **overrides) -> ExtractedBreakdown:
    fields = dict(
        pair=pair,
        extracted_at=at(minutes),
        token0_amount=0.035,
        token1_amount=6409.0,
        token0_percentage=37.0,
        token1_percentage=63.0,
    )
    fields.update(overrides)
    return ExtractedBreakdown(**fields)
