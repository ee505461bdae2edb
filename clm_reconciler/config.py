"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .normalize import merge_aliases, normalize_token
from .resolver import DEFAULT_PERCENTAGE_TOLERANCE

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconcileConfig:
    percentage_tolerance: float = DEFAULT_PERCENTAGE_TOLERANCE
    token_aliases: dict[str, str] = field(default_factory=merge_aliases)


@dataclass(frozen=True)
class AnomalyConfig:
    apy_max: float = 10000.0
    top_n: int = 5
    percentage_tolerance: float = DEFAULT_PERCENTAGE_TOLERANCE


@dataclass(frozen=True)
class VisionConfig:
    enabled: bool = False
    api_key: str = ""
    api_url: str = "https://api.anthropic.com/v1/messages"
    model: str = "claude-3-haiku-20240307"
    max_tokens: int = 1024
    timeout: int = 60
    anthropic_version: str = "2023-06-01"


@dataclass(frozen=True)
class StorageConfig:
    database_path: str = "clm_positions.db"


@dataclass(frozen=True)
class AppConfig:
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    anomalies: AnomalyConfig = field(default_factory=AnomalyConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_reconcile(raw: dict[str, Any]) -> ReconcileConfig:
    return ReconcileConfig(
        percentage_tolerance=float(
            raw.get("percentage_tolerance", DEFAULT_PERCENTAGE_TOLERANCE)
        ),
        token_aliases=merge_aliases(raw.get("token_aliases") or {}),
    )


def _build_anomalies(raw: dict[str, Any], reconcile: ReconcileConfig) -> AnomalyConfig:
    return AnomalyConfig(
        apy_max=float(raw.get("apy_max", 10000.0)),
        top_n=int(raw.get("top_n", 5)),
        percentage_tolerance=float(
            raw.get("percentage_tolerance", reconcile.percentage_tolerance)
        ),
    )


def _build_vision(raw: dict[str, Any]) -> VisionConfig:
    return VisionConfig(
        enabled=bool(raw.get("enabled", False)),
        api_key=raw.get("api_key", ""),
        api_url=raw.get("api_url", VisionConfig.api_url),
        model=raw.get("model", VisionConfig.model),
        max_tokens=int(raw.get("max_tokens", 1024)),
        timeout=int(raw.get("timeout", 60)),
        anthropic_version=raw.get("anthropic_version", VisionConfig.anthropic_version),
    )


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    return StorageConfig(
        database_path=raw.get("database_path", StorageConfig.database_path),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    reconcile = _build_reconcile(raw.get("reconcile") or {})
    cfg = AppConfig(
        reconcile=reconcile,
        anomalies=_build_anomalies(raw.get("anomalies") or {}, reconcile),
        vision=_build_vision(raw.get("vision") or {}),
        storage=_build_storage(raw.get("storage") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if cfg.reconcile.percentage_tolerance < 0:
        raise ValueError("reconcile.percentage_tolerance must be >= 0")
    if cfg.anomalies.percentage_tolerance < 0:
        raise ValueError("anomalies.percentage_tolerance must be >= 0")
    if cfg.anomalies.apy_max <= 0:
        raise ValueError("anomalies.apy_max must be > 0")
    if cfg.anomalies.top_n < 1:
        raise ValueError("anomalies.top_n must be >= 1")

    aliases = cfg.reconcile.token_aliases
    for source, target in aliases.items():
        # Targets must survive a second normalization unchanged.
        if normalize_token(target, aliases) != target:
            raise ValueError(
                f"Token alias '{source}' → '{target}' does not resolve to a "
                f"canonical symbol"
            )

    if cfg.vision.enabled and not cfg.vision.api_key:
        raise ValueError("Vision is enabled but no api_key is configured")
