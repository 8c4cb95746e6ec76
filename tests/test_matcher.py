"""Tests for parsing/matcher.py."""

from __future__ import annotations

import pytest

from streamcall.parsing.matcher import (
    MAX_MARKER_CARRY,
    ChunkType,
    carry_tail,
    contains_start_marker,
    detect,
)


# -----------------------------------------------------------------------------
# Tests: detect
# -----------------------------------------------------------------------------


class TestDetect:
    """Tests for chunk classification."""

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            ("<function_calls>", ChunkType.FUNCTION_START),
            ('<invoke name="search">', ChunkType.INVOKE),
            ('<parameter name="q">', ChunkType.PARAMETER),
            ('<invoke call_id="1" name="search">', ChunkType.INVOKE),
            ('<parameter type="string" name="q">', ChunkType.PARAMETER),
            ("</parameter>", ChunkType.CLOSING),
            ("</invoke>", ChunkType.CLOSING),
            ("</function_calls>", ChunkType.CLOSING),
        ],
    )
    def test_structural_markers_are_significant(self, delta: str, expected: ChunkType) -> None:
        detection = detect(delta)
        assert detection.type is expected
        assert detection.significant is True
        assert detection.structural is True
        assert detection.position == 0

    def test_earliest_marker_wins(self) -> None:
        detection = detect('value</parameter><parameter name="b">')
        assert detection.type is ChunkType.CLOSING
        assert detection.position == len("value")

    def test_wrapper_preferred_over_invoke(self) -> None:
        detection = detect('<function_calls><invoke name="x">')
        assert detection.type is ChunkType.FUNCTION_START

    def test_short_content_is_not_significant(self) -> None:
        detection = detect("hello")
        assert detection.type is ChunkType.CONTENT
        assert detection.significant is False

    def test_long_content_is_significant(self) -> None:
        detection = detect("x" * 21)
        assert detection.type is ChunkType.CONTENT
        assert detection.significant is True

    def test_threshold_is_exclusive(self) -> None:
        assert detect("x" * 20).significant is False
        assert detect("x" * 5, threshold=4).significant is True

    def test_empty_and_whitespace(self) -> None:
        assert detect("").type is ChunkType.NONE
        assert detect("   \n ").type is ChunkType.NONE
        assert detect("").significant is False


class TestCarry:
    """Tests for markers split across chunk boundaries."""

    def test_split_closing_tag_is_found_with_carry(self) -> None:
        processed = "some value</para"
        detection = detect("meter>", carry=carry_tail(processed))
        assert detection.type is ChunkType.CLOSING
        assert detection.significant is True

    def test_split_marker_missed_without_carry(self) -> None:
        assert detect("meter>").type is ChunkType.CONTENT

    def test_marker_inside_carry_is_ignored(self) -> None:
        detection = detect("abc", carry="</invoke>")
        assert detection.type is ChunkType.CONTENT

    def test_carry_tail_is_bounded(self) -> None:
        text = "x" * 100
        assert len(carry_tail(text)) == MAX_MARKER_CARRY
        assert carry_tail("short") == "short"


class TestStartMarker:
    def test_detects_wrapper_and_invoke(self) -> None:
        assert contains_start_marker("prose <function_calls>")
        assert contains_start_marker('<invoke name="a"')
        assert contains_start_marker('<invoke call_id="1" name="a">')

    def test_plain_text(self) -> None:
        assert not contains_start_marker("I will call a tool now.")
        assert not contains_start_marker("<invoke")
        assert not contains_start_marker('<invoke call_id="1">')
        assert not contains_start_marker('<invoke call_name="a">')
