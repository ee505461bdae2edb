"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from clm_reconciler.config import (
    AnomalyConfig,
    AppConfig,
    ReconcileConfig,
    StorageConfig,
    VisionConfig,
)
from clm_reconciler.models import CanonicalPosition, Capture, ScrapedPosition

from factories import T0, at, make_position


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_vision_config() -> VisionConfig:
    return VisionConfig(
        enabled=True,
        api_key="fake-key",
        api_url="https://vision.example.com/v1/messages",
        model="claude-3-haiku-20240307",
        timeout=5,
    )


@pytest.fixture()
def sample_app_config(tmp_path: Path, sample_vision_config: VisionConfig) -> AppConfig:
    return AppConfig(
        reconcile=ReconcileConfig(percentage_tolerance=0.5),
        anomalies=AnomalyConfig(apy_max=10000.0, top_n=3),
        vision=sample_vision_config,
        storage=StorageConfig(database_path=str(tmp_path / "positions.db")),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_positions() -> list[ScrapedPosition]:
    return [
        make_position("cbBTC/USDC0", balance=10000.0),
        make_position("SOL/PUMP", balance=2500.0, in_range=False, current_price=110.0),
        make_position("JLP/USDC0", balance=4000.0),
    ]


@pytest.fixture()
def sample_capture(sample_positions: list[ScrapedPosition]) -> Capture:
    return Capture(
        protocol="orca",
        captured_at=T0,
        positions=tuple(sample_positions),
        url="https://www.orca.so/portfolio",
    )


@pytest.fixture()
def sample_canonical() -> CanonicalPosition:
    return CanonicalPosition(
        protocol="orca",
        pair="cbBTC/USDC0",
        normalized_pair="BTC/USDC",
        captured_at=at(0),
        balance=10000.0,
        apy=8.0,
        range_min=95.0,
        range_max=105.0,
        in_range=True,
        token0_amount=0.035,
        token1_amount=6409.0,
        token0_percentage=37.0,
        token1_percentage=63.0,
        breakdown_at=at(0),
    )


# ---------------------------------------------------------------------------
# Raw JSON fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def raw_capture() -> dict:
    """Capture record as written by the page scraper."""
    return {
        "id": "cap-1",
        "url": "https://www.orca.so/portfolio",
        "title": "Orca Portfolio",
        "timestamp": "2025-10-01T12:00:00.000Z",
        "protocol": "Orca",
        "data": {
            "content": {
                "clmPositions": {
                    "positions": [
                        {
                            "pair": "cbBTC/USDC0",
                            "balance": 10183.42,
                            "pendingYield": "$12.50",
                            "apy": "24.3%",
                            "rangeMin": 95000,
                            "rangeMax": 125000,
                            "currentPrice": 110000,
                            "inRange": True,
                        },
                        {
                            "pair": "SOL/PUMP",
                            "balance": "$1,250.00",
                            "apy": 15000,
                            "rangeMin": 105,
                            "rangeMax": 95,
                            "inRange": False,
                        },
                        {"pair": "", "balance": 5},
                    ]
                }
            }
        },
    }


SAMPLE_YAML = textwrap.dedent("""\
    reconcile:
      percentage_tolerance: 1.0
      token_aliases:
        jitoSOL: SOL
    anomalies:
      apy_max: 5000
      top_n: 3
    vision:
      enabled: true
      api_key: "${TEST_VISION_KEY}"
      model: claude-test
      timeout: 15
    storage:
      database_path: "/tmp/test-positions.db"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TEST_VISION_KEY", "sk-test")
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
