"""Observation store protocol — persistence abstraction."""
from typing import Protocol

from ..models import CanonicalPosition, Observation


class ObservationStore(Protocol):
    """Abstract interface for storing observations and canonical records."""

    def add_observation(self, observation: Observation) -> None: ...

    def fetch_observations(self, key: str) -> list[Observation]: ...

    def keys(self, protocol: str | None = None) -> list[str]: ...

    def get_canonical(self, key: str) -> CanonicalPosition | None: ...

    def upsert_canonical(self, record: CanonicalPosition) -> None: ...

    def list_canonical(self, protocol: str | None = None) -> list[CanonicalPosition]: ...
