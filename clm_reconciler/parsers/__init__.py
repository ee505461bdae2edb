"""Parsers for raw capture, stored-row and vision payloads."""
from .capture import (
    canonical_to_dict,
    parse_breakdown,
    parse_capture,
    parse_observation,
    parse_position,
    parse_timestamp,
)

__all__ = [
    "canonical_to_dict",
    "parse_breakdown",
    "parse_capture",
    "parse_observation",
    "parse_position",
    "parse_timestamp",
]
