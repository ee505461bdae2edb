"""Reconciliation engine for scraped and vision-extracted CLM positions."""
from .anomalies import scan_anomalies, summarize
from .matcher import match_position
from .normalize import normalize_pair, normalize_token
from .resolver import reconcile, reconcile_all

__all__ = [
    "match_position",
    "normalize_pair",
    "normalize_token",
    "reconcile",
    "reconcile_all",
    "scan_anomalies",
    "summarize",
]
