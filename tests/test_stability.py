"""Tests for streaming/stability.py."""

from __future__ import annotations

import pytest

from streamcall.streaming import StabilityTracker


def make_tracker(**overrides: float) -> StabilityTracker:
    options = {"required_checks": 2, "min_interval": 0.2, "max_gap": 1.0}
    options.update(overrides)
    return StabilityTracker(clock=lambda: 0.0, **options)  # type: ignore[arg-type]


class TestStabilityTracker:
    """Tests for StabilityTracker."""

    def test_two_spaced_checks_are_stable(self) -> None:
        tracker = make_tracker()
        assert tracker.record("b", True, now=0.0) is False
        assert tracker.record("b", True, now=0.2) is True
        assert tracker.is_stable("b")

    def test_early_check_is_not_counted(self) -> None:
        tracker = make_tracker()
        tracker.record("b", True, now=0.0)
        assert tracker.record("b", True, now=0.1) is False
        assert tracker.checks("b") == 1
        assert tracker.record("b", True, now=0.25) is True

    def test_float_spacing_tolerance(self) -> None:
        tracker = make_tracker()
        tracker.record("b", True, now=0.05)
        assert tracker.record("b", True, now=0.25) is True

    def test_negative_check_resets(self) -> None:
        tracker = make_tracker()
        tracker.record("b", True, now=0.0)
        tracker.record("b", False, now=0.2)
        assert tracker.checks("b") == 0
        assert tracker.record("b", True, now=0.4) is False

    def test_long_gap_restarts_count(self) -> None:
        tracker = make_tracker()
        tracker.record("b", True, now=0.0)
        assert tracker.record("b", True, now=1.5) is False
        assert tracker.checks("b") == 1
        assert tracker.record("b", True, now=1.7) is True

    def test_blocks_are_independent(self) -> None:
        tracker = make_tracker()
        tracker.record("a", True, now=0.0)
        tracker.record("b", True, now=0.1)
        assert tracker.record("a", True, now=0.2) is True
        assert tracker.is_stable("b") is False

    def test_uses_clock_when_now_omitted(self) -> None:
        times = iter([0.0, 0.3])
        tracker = StabilityTracker(clock=lambda: next(times))
        tracker.record("b", True)
        assert tracker.record("b", True) is True

    def test_discard_and_reset(self) -> None:
        tracker = make_tracker()
        tracker.record("b", True, now=0.0)
        tracker.reset("b")
        assert tracker.checks("b") == 0
        tracker.discard("b")
        assert "b" not in tracker
        tracker.discard("b")

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            StabilityTracker(required_checks=0)
        with pytest.raises(ValueError):
            StabilityTracker(min_interval=1.0, max_gap=0.5)
