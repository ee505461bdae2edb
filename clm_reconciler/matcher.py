"""Match a vision-extracted breakdown to one of the scraped positions."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace

from .models import ExtractedBreakdown, ScrapedPosition
from .normalize import split_pair

logger = logging.getLogger(__name__)


def match_position(
    extracted: ExtractedBreakdown | None,
    candidates: Sequence[ScrapedPosition],
    aliases: Mapping[str, str] | None = None,
) -> ScrapedPosition | None:
    """Return the candidate whose pair is the one the model reported, or None.

    Exact token order is tried across all candidates before reversed order.
    There is no nearest-candidate fallback: an unmatched breakdown must be
    discarded, never attached to a position that was not expanded.
    """
    if extracted is None:
        return None

    wanted = split_pair(extracted.pair, aliases)
    if wanted is None:
        logger.info("Extracted pair %r is malformed; no match", extracted.pair)
        return None

    normalized = [(c, split_pair(c.pair, aliases)) for c in candidates]

    for candidate, tokens in normalized:
        if tokens == wanted:
            logger.debug("Exact match: %r → %r", extracted.pair, candidate.pair)
            return candidate

    reversed_wanted = (wanted[1], wanted[0])
    for candidate, tokens in normalized:
        if tokens == reversed_wanted:
            logger.debug("Reversed match: %r → %r", extracted.pair, candidate.pair)
            return candidate

    logger.info(
        "No match for %r among %s",
        extracted.pair,
        ", ".join(c.pair for c in candidates) or "no candidates",
    )
    return None


def orient_breakdown(
    breakdown: ExtractedBreakdown,
    position: ScrapedPosition,
    aliases: Mapping[str, str] | None = None,
) -> ExtractedBreakdown:
    """Line a matched breakdown's sides up with the scraped pair's token order.

    A breakdown matched in reversed order is returned with its token0/token1
    values swapped and the position's raw pair; anything else is unchanged.
    """
    wanted = split_pair(breakdown.pair, aliases)
    tokens = split_pair(position.pair, aliases)
    if wanted is None or tokens is None or wanted == tokens:
        return breakdown
    if wanted != (tokens[1], tokens[0]):
        return breakdown

    return replace(
        breakdown,
        pair=position.pair,
        token0=breakdown.token1,
        token1=breakdown.token0,
        token0_amount=breakdown.token1_amount,
        token1_amount=breakdown.token0_amount,
        token0_percentage=breakdown.token1_percentage,
        token1_percentage=breakdown.token0_percentage,
    )
