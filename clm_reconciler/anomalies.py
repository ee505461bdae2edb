"""Per-capture statistics and heuristic anomaly flags — pure, no I/O."""
from __future__ import annotations

from collections.abc import Sequence

from .config import AnomalyConfig
from .models import Capture, CaptureSummary, RankedPosition, ScrapedPosition
from .resolver import percentages_valid


def _label(position: ScrapedPosition) -> str:
    return position.pair or "unknown"


def _position_anomalies(position: ScrapedPosition, thresholds: AnomalyConfig) -> list[str]:
    label = _label(position)
    found: list[str] = []

    if position.apy is not None:
        if position.apy > thresholds.apy_max:
            found.append(f"{label}: APY extremely high ({position.apy:g}%)")
        elif position.apy < 0:
            found.append(f"{label}: negative APY ({position.apy:g}%)")

    lo, hi = position.range_min, position.range_max
    if lo is not None and hi is not None:
        if lo > hi:
            found.append(f"{label}: rangeMin > rangeMax ({lo:g} > {hi:g})")
        elif position.current_price is not None and position.in_range is not None:
            expected = lo <= position.current_price <= hi
            if expected != position.in_range:
                found.append(
                    f"{label}: inRange={position.in_range} but price "
                    f"{position.current_price:g} vs range {lo:g}-{hi:g}"
                )

    if position.balance is not None and position.balance < 0:
        found.append(f"{label}: negative balance (${position.balance:,.2f})")

    if not percentages_valid(
        position.token0_percentage,
        position.token1_percentage,
        thresholds.percentage_tolerance,
    ):
        found.append(
            f"{label}: token percentages out of bounds "
            f"({position.token0_percentage} + {position.token1_percentage})"
        )

    return found


def scan_anomalies(
    positions: Sequence[ScrapedPosition], thresholds: AnomalyConfig | None = None
) -> list[str]:
    """Return human-readable anomaly flags, in position order."""
    thresholds = thresholds or AnomalyConfig()
    anomalies: list[str] = []
    for position in positions:
        anomalies.extend(_position_anomalies(position, thresholds))
    return anomalies


def top_positions(
    positions: Sequence[ScrapedPosition], limit: int
) -> tuple[RankedPosition, ...]:
    """Largest positions by balance; ties keep their input order."""
    ranked = [RankedPosition(pair=_label(p), balance=p.balance or 0.0) for p in positions]
    ranked.sort(key=lambda r: r.balance, reverse=True)
    return tuple(ranked[:limit])


def summarize(capture: Capture, thresholds: AnomalyConfig | None = None) -> CaptureSummary:
    """Compute totals, range counts, top-N and anomalies for one capture."""
    thresholds = thresholds or AnomalyConfig()
    positions = capture.positions

    return CaptureSummary(
        protocol=capture.protocol,
        captured_at=capture.captured_at,
        total_positions=len(positions),
        total_value=sum(p.balance or 0.0 for p in positions),
        in_range=sum(1 for p in positions if p.in_range is True),
        out_of_range=sum(1 for p in positions if p.in_range is False),
        range_unknown=sum(1 for p in positions if p.in_range is None),
        missing_breakdown=sum(1 for p in positions if not p.has_breakdown),
        top_positions=top_positions(positions, thresholds.top_n),
        anomalies=tuple(scan_anomalies(positions, thresholds)),
    )
