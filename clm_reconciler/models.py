"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ScrapedPosition:
    """One CLM position row as read off a page at a point in time."""

    protocol: str
    pair: str
    captured_at: datetime
    token0: str | None = None
    token1: str | None = None
    balance: float | None = None
    pending_yield: float | None = None
    apy: float | None = None
    range_min: float | None = None
    range_max: float | None = None
    current_price: float | None = None
    in_range: bool | None = None
    # Some pages render the breakdown inline; usually empty.
    token0_amount: float | None = None
    token1_amount: float | None = None
    token0_percentage: float | None = None
    token1_percentage: float | None = None

    @property
    def has_breakdown(self) -> bool:
        return self.token0_amount is not None and self.token1_amount is not None


@dataclass(frozen=True)
class ExtractedBreakdown:
    """Vision model's reading of the currently expanded position."""

    pair: str
    extracted_at: datetime
    token0_amount: float | None = None
    token1_amount: float | None = None
    token0_percentage: float | None = None
    token1_percentage: float | None = None
    token0: str | None = None
    token1: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.token0_amount is not None and self.token1_amount is not None


@dataclass(frozen=True)
class CanonicalPosition:
    """Authoritative, continuously updated record per protocol + pair."""

    protocol: str
    pair: str
    normalized_pair: str
    captured_at: datetime
    token0: str | None = None
    token1: str | None = None
    balance: float | None = None
    pending_yield: float | None = None
    apy: float | None = None
    range_min: float | None = None
    range_max: float | None = None
    current_price: float | None = None
    in_range: bool | None = None
    token0_amount: float | None = None
    token1_amount: float | None = None
    token0_percentage: float | None = None
    token1_percentage: float | None = None
    breakdown_at: datetime | None = None

    @property
    def has_breakdown(self) -> bool:
        return self.token0_amount is not None and self.token1_amount is not None

    @property
    def key(self) -> str:
        return f"{self.protocol}::{self.normalized_pair}"


@dataclass(frozen=True)
class Observation:
    """A scraped position, optionally enriched with a matched breakdown."""

    position: ScrapedPosition
    breakdown: ExtractedBreakdown | None = None

    @property
    def observed_at(self) -> datetime:
        """Breakdown time when one is attached, otherwise the scrape time."""
        if self.breakdown is not None:
            return self.breakdown.extracted_at
        return self.position.captured_at


@dataclass(frozen=True)
class Capture:
    """One timestamped scrape of a protocol page."""

    protocol: str
    captured_at: datetime
    positions: tuple[ScrapedPosition, ...] = ()
    url: str = ""
    title: str = ""


@dataclass(frozen=True)
class RankedPosition:
    """Entry in a summary's top-N list."""

    pair: str
    balance: float


@dataclass(frozen=True)
class CaptureSummary:
    """Per-capture statistics and anomaly findings."""

    protocol: str
    captured_at: datetime | None
    total_positions: int
    total_value: float
    in_range: int
    out_of_range: int
    range_unknown: int
    missing_breakdown: int
    top_positions: tuple[RankedPosition, ...] = ()
    anomalies: tuple[str, ...] = ()
