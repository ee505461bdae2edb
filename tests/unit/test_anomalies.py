"""Unit tests for capture summaries and anomaly flags."""
from __future__ import annotations

import pytest

from clm_reconciler.anomalies import scan_anomalies, summarize, top_positions
from clm_reconciler.config import AnomalyConfig
from clm_reconciler.models import Capture

from factories import T0, make_position


class TestScanAnomalies:
    def test_inverted_range_and_negative_balance(self) -> None:
        positions = [
            make_position("SOL/USDC", range_min=105.0, range_max=95.0),
            make_position("JLP/USDC", balance=-10.0),
            make_position("cbBTC/USDC0", balance=5000.0, apy=8.0, in_range=True),
        ]
        anomalies = scan_anomalies(positions)

        assert len(anomalies) == 2
        assert anomalies[0].startswith("SOL/USDC: rangeMin > rangeMax")
        assert anomalies[1].startswith("JLP/USDC: negative balance")
        assert not any("cbBTC" in a for a in anomalies)

    def test_normal_position_not_flagged(self) -> None:
        assert scan_anomalies([make_position(apy=8.0, balance=100.0)]) == []

    def test_high_apy(self) -> None:
        anomalies = scan_anomalies([make_position(apy=15000.0)])
        assert anomalies == ["cbBTC/USDC0: APY extremely high (15000%)"]

    def test_apy_threshold_configurable(self) -> None:
        thresholds = AnomalyConfig(apy_max=100.0)
        assert scan_anomalies([make_position(apy=150.0)], thresholds)
        assert scan_anomalies([make_position(apy=150.0)]) == []

    def test_negative_apy(self) -> None:
        anomalies = scan_anomalies([make_position(apy=-2.0)])
        assert "negative APY" in anomalies[0]

    def test_in_range_contradiction(self) -> None:
        position = make_position(current_price=120.0, range_min=95.0, range_max=105.0, in_range=True)
        anomalies = scan_anomalies([position])
        assert len(anomalies) == 1
        assert "inRange=True" in anomalies[0]

    def test_in_range_unknown_not_flagged(self) -> None:
        position = make_position(current_price=120.0, in_range=None)
        assert scan_anomalies([position]) == []

    def test_percentage_sum_over_tolerance(self) -> None:
        position = make_position(token0_percentage=60.0, token1_percentage=45.0)
        anomalies = scan_anomalies([position])
        assert "token percentages out of bounds" in anomalies[0]

    def test_percentage_sum_within_tolerance(self) -> None:
        position = make_position(token0_percentage=36.4, token1_percentage=64.0)
        assert scan_anomalies([position], AnomalyConfig(percentage_tolerance=0.5)) == []

    def test_missing_fields_tolerated(self) -> None:
        position = make_position(
            balance=None, apy=None, range_min=None, range_max=None, current_price=None, in_range=None
        )
        assert scan_anomalies([position]) == []


class TestTopPositions:
    def test_sorted_descending(self) -> None:
        positions = [
            make_position("A/B", balance=1.0),
            make_position("C/D", balance=3.0),
            make_position("E/F", balance=2.0),
        ]
        assert [r.pair for r in top_positions(positions, 2)] == ["C/D", "E/F"]

    def test_ties_keep_input_order(self) -> None:
        positions = [
            make_position("A/B", balance=5.0),
            make_position("C/D", balance=7.0),
            make_position("E/F", balance=5.0),
            make_position("G/H", balance=5.0),
        ]
        assert [r.pair for r in top_positions(positions, 4)] == ["C/D", "A/B", "E/F", "G/H"]

    def test_null_balance_ranks_as_zero(self) -> None:
        positions = [make_position("A/B", balance=None), make_position("C/D", balance=1.0)]
        ranked = top_positions(positions, 5)
        assert [r.pair for r in ranked] == ["C/D", "A/B"]
        assert ranked[1].balance == 0.0


class TestSummarize:
    def test_totals_and_counts(self, sample_capture: Capture) -> None:
        summary = summarize(sample_capture)
        assert summary.protocol == "orca"
        assert summary.captured_at == T0
        assert summary.total_positions == 3
        assert summary.total_value == pytest.approx(16500.0)
        assert summary.in_range == 2
        assert summary.out_of_range == 1
        assert summary.range_unknown == 0
        assert summary.missing_breakdown == 3

    def test_top_n_from_config(self, sample_capture: Capture) -> None:
        summary = summarize(sample_capture, AnomalyConfig(top_n=2))
        assert [r.pair for r in summary.top_positions] == ["cbBTC/USDC0", "JLP/USDC0"]

    def test_null_balance_counts_as_zero(self) -> None:
        capture = Capture(
            protocol="orca",
            captured_at=T0,
            positions=(
                make_position("A/B", balance=None, in_range=None),
                make_position("C/D", balance=250.0, token0_amount=1.0, token1_amount=2.0),
            ),
        )
        summary = summarize(capture)
        assert summary.total_value == pytest.approx(250.0)
        assert summary.range_unknown == 1
        assert summary.missing_breakdown == 1

    def test_anomalies_included(self) -> None:
        capture = Capture(
            protocol="orca",
            captured_at=T0,
            positions=(make_position(balance=-10.0),),
        )
        summary = summarize(capture)
        assert len(summary.anomalies) == 1

    def test_empty_capture(self) -> None:
        summary = summarize(Capture(protocol="orca", captured_at=T0))
        assert summary.total_positions == 0
        assert summary.total_value == 0
        assert summary.top_positions == ()
        assert summary.anomalies == ()
