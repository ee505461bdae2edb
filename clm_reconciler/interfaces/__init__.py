"""Protocol interfaces for the reconciliation engine's collaborators."""
from .store import ObservationStore
from .vision import VisionExtractor

__all__ = ["ObservationStore", "VisionExtractor"]
