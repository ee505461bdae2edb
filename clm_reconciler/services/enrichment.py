"""Enrichment orchestration — scrape ingestion, vision matching, canonical upserts."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from ..config import AppConfig
from ..interfaces.store import ObservationStore
from ..interfaces.vision import VisionExtractor
from ..matcher import match_position, orient_breakdown
from ..models import (
    CanonicalPosition,
    Capture,
    ExtractedBreakdown,
    Observation,
    ScrapedPosition,
)
from ..normalize import normalize_pair
from ..resolver import position_key, reconcile, reconcile_all

logger = logging.getLogger(__name__)


class EnrichmentService:
    """Feeds scrapes and vision answers through the reconciliation engine.

    Writes for one position key must not interleave; callers running several
    services against one store serialize per key.
    """

    def __init__(
        self,
        store: ObservationStore,
        vision: VisionExtractor | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self._store = store
        self._vision = vision
        self._config = config or AppConfig()
        self._aliases = self._config.reconcile.token_aliases
        self._tolerance = self._config.reconcile.percentage_tolerance

    def _key(self, position: ScrapedPosition) -> str:
        return position_key(position.protocol, position.pair, self._aliases)

    def _fold(
        self, position: ScrapedPosition, breakdown: ExtractedBreakdown | None
    ) -> CanonicalPosition:
        """Record one observation and fold it into the stored canonical row."""
        self._store.add_observation(Observation(position=position, breakdown=breakdown))
        existing = self._store.get_canonical(self._key(position))
        record = reconcile(
            existing,
            position,
            breakdown,
            tolerance=self._tolerance,
            aliases=self._aliases,
        )
        self._store.upsert_canonical(record)
        return record

    def ingest_capture(self, capture: Capture) -> list[CanonicalPosition]:
        """Store every scraped position of a capture; return the updated records."""
        updated = [self._fold(position, None) for position in capture.positions]
        logger.info(
            "Ingested %d positions from %s capture at %s",
            len(updated),
            capture.protocol,
            capture.captured_at.isoformat(),
        )
        return updated

    def apply_breakdown(
        self,
        breakdown: ExtractedBreakdown | None,
        candidates: Sequence[ScrapedPosition],
    ) -> CanonicalPosition | None:
        """Attach a breakdown to the position it names, or leave everything as is."""
        if breakdown is None:
            logger.info("No expanded position found; nothing to enrich")
            return None

        matched = match_position(breakdown, candidates, self._aliases)
        if matched is None:
            logger.warning(
                "Discarding breakdown for %s (normalized %s): no matching position in %s",
                breakdown.pair,
                normalize_pair(breakdown.pair, self._aliases),
                ", ".join(normalize_pair(c.pair, self._aliases) for c in candidates),
            )
            return None

        record = self._fold(matched, orient_breakdown(breakdown, matched, self._aliases))
        logger.info("Matched breakdown %s → %s", breakdown.pair, record.key)
        return record

    async def enrich(
        self,
        screenshot: str,
        candidates: Sequence[ScrapedPosition],
        captured_at: datetime | None = None,
    ) -> CanonicalPosition | None:
        """Ask the vision model what is expanded and fold its breakdown in."""
        if self._vision is None:
            logger.debug("Vision extractor not configured, skipping enrichment")
            return None

        breakdown = await self._vision.extract(screenshot, captured_at)
        return self.apply_breakdown(breakdown, candidates)

    def rebuild(self, key: str) -> CanonicalPosition | None:
        """Replay a key's full observation history and store the result."""
        records = reconcile_all(
            self._store.fetch_observations(key),
            tolerance=self._tolerance,
            aliases=self._aliases,
        )
        record = records.get(key)
        if record is not None:
            self._store.upsert_canonical(record)
        return record

    def rebuild_all(self, protocol: str | None = None) -> list[CanonicalPosition]:
        """Rebuild every stored key, optionally for one protocol only."""
        rebuilt = [
            record
            for record in (self.rebuild(key) for key in self._store.keys(protocol))
            if record is not None
        ]
        logger.info("Rebuilt %d canonical records from history", len(rebuilt))
        return rebuilt
