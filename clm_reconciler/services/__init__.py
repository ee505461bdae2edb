"""Service modules"""
from .enrichment import EnrichmentService

__all__ = ["EnrichmentService"]
