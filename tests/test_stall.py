"""Tests for streaming/stall.py."""

from __future__ import annotations

from streamcall.streaming import ManualScheduler, StallDetector


class Events:
    def __init__(self) -> None:
        self.log: list[tuple[str, str, float]] = []
        self.scheduler = ManualScheduler()

    def abrupt(self, block_id: str) -> None:
        self.log.append(("abrupt", block_id, self.scheduler.now()))

    def stalled(self, block_id: str) -> None:
        self.log.append(("stalled", block_id, self.scheduler.now()))

    def recovered(self, block_id: str) -> None:
        self.log.append(("recovered", block_id, self.scheduler.now()))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.log]


def make_detector(events: Events) -> StallDetector:
    return StallDetector(
        events.scheduler,
        on_abrupt_end=events.abrupt,
        on_stalled=events.stalled,
        on_recovered=events.recovered,
        tick_interval=1.0,
        stale_ticks=3,
        stall_timeout=3.0,
    )


class TestStallDetector:
    """Tests for StallDetector."""

    def test_unbalanced_block_without_growth_ends_abruptly(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10)
        events.scheduler.advance(2.0)
        assert events.log == []
        events.scheduler.advance(1.0)
        assert events.names() == ["stalled", "abrupt"]
        assert all(when == 3.0 for _, _, when in events.log)
        state = detector.state("b")
        assert state is not None and state.abruptly_ended and state.marked_stalled

    def test_no_more_ticks_after_abrupt_end(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10)
        events.scheduler.advance(10.0)
        assert events.names().count("abrupt") == 1
        assert events.scheduler.pending == 0

    def test_growth_resets_stale_count(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10)
        events.scheduler.advance(2.5)
        detector.record_growth("b", 20)
        events.scheduler.advance(2.5)
        assert "abrupt" not in events.names()
        events.scheduler.advance(1.0)
        assert events.names() == ["stalled", "abrupt"]

    def test_balanced_block_never_ends_abruptly(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10, unbalanced=False)
        events.scheduler.advance(10.0)
        assert events.log == []
        assert events.scheduler.pending == 1

    def test_recovery_after_stall(self) -> None:
        events = Events()
        detector = StallDetector(
            events.scheduler,
            on_abrupt_end=events.abrupt,
            on_stalled=events.stalled,
            on_recovered=events.recovered,
            stale_ticks=10,
            stall_timeout=3.0,
        )
        detector.track("b", 10)
        events.scheduler.advance(3.0)
        assert events.names() == ["stalled"]
        detector.record_growth("b", 11)
        assert events.names() == ["stalled", "recovered"]
        assert detector.state("b").marked_stalled is False

    def test_same_length_is_not_growth(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10)
        events.scheduler.advance(1.0)
        detector.record_growth("b", 10)
        events.scheduler.advance(2.0)
        assert events.names() == ["stalled", "abrupt"]

    def test_discard_is_idempotent_and_stops_ticks(self) -> None:
        events = Events()
        detector = make_detector(events)
        detector.track("b", 10)
        detector.discard("b")
        detector.discard("b")
        events.scheduler.advance(10.0)
        assert events.log == []
        assert "b" not in detector

    def test_abrupt_callback_may_discard(self) -> None:
        events = Events()
        detector: StallDetector

        def on_abrupt(block_id: str) -> None:
            events.abrupt(block_id)
            detector.discard(block_id)

        detector = StallDetector(events.scheduler, on_abrupt_end=on_abrupt)
        detector.track("b", 1)
        events.scheduler.advance(5.0)
        assert events.names() == ["abrupt"]
        assert detector.state("b") is None
