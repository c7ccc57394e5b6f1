"""
Tests for item exposure control.

Tests cover:
- ExposureMonitor: recording, rates, threshold alerts, thread safety, reset
- Sympson-Hetter, randomesque and progressive candidate filters
- Weighted-selection exposure adjustment
"""
import logging
import threading
from typing import Dict

import pytest

from cat_engine.core.cat.exposure_control import (
    RANDOMESQUE_K,
    SYMPSON_HETTER_MAX_RATE,
    ExposureMonitor,
    apply_exposure_control,
    apply_progressive,
    apply_randomesque,
    apply_sympson_hetter,
    exposure_adjustment,
)
from cat_engine.core.cat.irt import ItemParameters
from libs.domain_types import ExposureControlMethod


def _params_by_difficulty(n: int) -> Dict[str, ItemParameters]:
    """Items q1..qn with difficulty moving away from 0."""
    return {f"q{i}": ItemParameters(a=1.0, b=0.25 * (i - 1)) for i in range(1, n + 1)}


class TestExposureMonitor:
    """Tests for ExposureMonitor."""

    def test_record_administration_returns_count(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        assert monitor.record_administration("q1") == 1
        assert monitor.record_administration("q1") == 2
        assert monitor.get_count("q1") == 2
        assert monitor.get_count("unknown") == 0

    def test_rate_is_zero_before_any_session(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_administration("q1")
        assert monitor.get_exposure_rate("q1") == 0.0

    def test_rate_uses_sessions_started(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        for _ in range(4):
            monitor.record_session()
        monitor.record_administration("q1")
        monitor.record_administration("q2")
        monitor.record_administration("q2")

        assert monitor.sessions_started == 4
        assert monitor.get_exposure_rate("q1") == pytest.approx(0.25)
        assert monitor.get_exposure_rates() == {"q1": 0.25, "q2": 0.5}

    def test_overexposed_items_sorted(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        for _ in range(10):
            monitor.record_session()
        for _ in range(3):
            monitor.record_administration("q1")
        for _ in range(5):
            monitor.record_administration("q2")
        monitor.record_administration("q3")

        assert monitor.get_overexposed_items() == [("q2", 0.5), ("q1", 0.3)]

    def test_check_and_alert_logs(self, caplog):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_session()
        monitor.record_administration("q1")

        with caplog.at_level(logging.WARNING):
            overexposed = monitor.check_and_alert()

        assert overexposed == [("q1", 1.0)]
        assert "Exposure alert" in caplog.text
        assert "q1" in caplog.text

    def test_check_and_alert_without_sessions(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_administration("q1")
        assert monitor.check_and_alert() == []

    def test_reset(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_session()
        monitor.record_administration("q1")

        monitor.reset()

        assert monitor.get_counts() == {}
        assert monitor.sessions_started == 0
        assert monitor.get_exposure_rates() == {}
        assert monitor.get_peak_exposure_rate("q1") == 0.0

    def test_default_threshold_from_settings(self):
        from cat_engine.core.config import settings

        assert ExposureMonitor().alert_threshold == settings.CAT_EXPOSURE_ALERT_THRESHOLD

    @pytest.mark.parametrize("threshold", [-0.1, 1.1])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(ValueError, match="alert_threshold"):
            ExposureMonitor(alert_threshold=threshold)

    def test_concurrent_increments(self):
        monitor = ExposureMonitor(alert_threshold=0.2)

        def worker():
            for _ in range(500):
                monitor.record_administration("q1")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert monitor.get_count("q1") == 4000


class TestFilters:
    """Tests for the exposure control candidate filters."""

    def test_sympson_hetter_threshold_is_inclusive(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        for _ in range(10):
            monitor.record_session()
        for _ in range(3):
            monitor.record_administration("q1")  # rate 0.3
        for _ in range(2):
            monitor.record_administration("q2")  # rate 0.2

        assert SYMPSON_HETTER_MAX_RATE == 0.3
        assert apply_sympson_hetter(["q1", "q2", "q3"], monitor) == ["q2", "q3"]

    def test_sympson_hetter_exclusion_survives_new_sessions(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_session()
        monitor.record_administration("q1")  # rate 1.0
        for _ in range(9):
            monitor.record_session()

        assert monitor.get_exposure_rate("q1") == pytest.approx(0.1)
        assert monitor.get_peak_exposure_rate("q1") == 1.0
        assert apply_sympson_hetter(["q1", "q2"], monitor) == ["q2"]

        monitor.reset()
        monitor.record_session()
        assert apply_sympson_hetter(["q1", "q2"], monitor) == ["q1", "q2"]

    def test_peak_rate_tracks_highest_administration_rate(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        for _ in range(4):
            monitor.record_session()
        monitor.record_administration("q1")  # 0.25
        monitor.record_session()
        monitor.record_administration("q1")  # 0.4
        for _ in range(5):
            monitor.record_session()
        monitor.record_administration("q1")  # 0.3

        assert monitor.get_exposure_rate("q1") == pytest.approx(0.3)
        assert monitor.get_peak_exposure_rate("q1") == pytest.approx(0.4)

    def test_randomesque_keeps_top_k_at_zero(self):
        params = _params_by_difficulty(8)
        shortlist = apply_randomesque(list(reversed(list(params))), params.__getitem__)

        assert len(shortlist) == RANDOMESQUE_K
        assert set(shortlist) == {"q1", "q2", "q3", "q4", "q5"}
        assert shortlist[0] == "q1"

    def test_randomesque_small_pool(self):
        params = _params_by_difficulty(3)
        assert apply_randomesque(list(params), params.__getitem__) == ["q1", "q2", "q3"]

    def test_randomesque_invalid_k(self):
        with pytest.raises(ValueError):
            apply_randomesque(["q1"], lambda _: ItemParameters(a=1.0, b=0.0), k=0)

    def test_progressive_stable_ascending(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        monitor.record_administration("q1")
        monitor.record_administration("q1")
        monitor.record_administration("q3")

        assert apply_progressive(["q1", "q2", "q3", "q4"], monitor) == ["q2", "q4", "q3", "q1"]

    def test_none_leaves_candidates(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        candidates = ["q2", "q1"]
        result = apply_exposure_control(candidates, ExposureControlMethod.NONE, monitor, None)
        assert result == candidates
        assert result is not candidates

    def test_dispatch(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        params = _params_by_difficulty(7)
        result = apply_exposure_control(
            list(params), ExposureControlMethod.RANDOMESQUE, monitor, params.__getitem__
        )
        assert len(result) == RANDOMESQUE_K


class TestExposureAdjustment:
    @pytest.mark.parametrize(
        "count,max_count,expected",
        [(0, 10, 1.0), (5, 10, 0.75), (10, 10, 0.5), (3, 0, 1.0)],
    )
    def test_values(self, count, max_count, expected):
        assert exposure_adjustment(count, max_count) == pytest.approx(expected)
