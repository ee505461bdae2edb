"""Vision extractor protocol — screenshot reading abstraction."""
from datetime import datetime
from typing import Protocol

from ..models import ExtractedBreakdown


class VisionExtractor(Protocol):
    """Abstract interface for discovering the expanded position in a screenshot."""

    async def extract(
        self, screenshot: str, captured_at: datetime | None = None
    ) -> ExtractedBreakdown | None: ...
