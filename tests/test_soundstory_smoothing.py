from __future__ import annotations

import pytest

from soundstory.schema import AttributeTuple
from soundstory.smoothing import SmoothingWindow, smooth, weighted_intensity


def _tuple(
    mood: str = "calm",
    setting: str = "forest",
    intensity: float = 0.5,
    event: str = "exploration",
) -> AttributeTuple:
    return AttributeTuple(mood=mood, setting=setting, intensity=intensity, narrative_event=event)


def test_smooth_empty_history_is_identity() -> None:
    current = _tuple("epic", "castle", 0.9, "battle")
    assert smooth(current, []) is current


def test_smooth_majority_wins() -> None:
    a = _tuple("scary", "cave", 0.5, "danger")
    b = _tuple("cozy", "village", 0.5, "resolution")

    result = smooth(a, [a, a, b])

    assert result.mood == "scary"
    assert result.setting == "cave"
    assert result.narrative_event == "danger"


def test_smooth_majority_overrules_current() -> None:
    a = _tuple("calm", "forest", 0.2, "exploration")
    b = _tuple("scary", "dungeon", 0.2, "danger")

    result = smooth(b, [a, a])

    assert result.mood == "calm"
    assert result.setting == "forest"
    assert result.narrative_event == "exploration"


def test_smooth_two_to_one_keeps_majority() -> None:
    a = _tuple("mysterious", "night", 0.4, "magic")
    b = _tuple("tense", "storm", 0.4, "danger")

    assert smooth(a, [a, b]).mood == "mysterious"


def test_smooth_tie_goes_to_most_recent() -> None:
    a = _tuple("sad", "space", 0.4, "discovery")
    b = _tuple("whimsical", "fantasy", 0.4, "magic")

    result = smooth(b, [a])

    assert result.mood == "whimsical"
    assert result.setting == "fantasy"
    assert result.narrative_event == "magic"


def test_smooth_tie_prefers_latest_history_entry_over_older() -> None:
    a = _tuple(mood="calm")
    b = _tuple(mood="tense")
    c = _tuple(mood="epic")

    # calm: 2, tense: 2, epic: 1; tense was seen last among the leaders.
    assert smooth(c, [a, b, a, b]).mood == "tense"


def test_smooth_weighted_intensity_example() -> None:
    recent = [_tuple(intensity=0.2), _tuple(intensity=0.4)]

    result = smooth(_tuple(intensity=0.8), recent)

    assert result.intensity == pytest.approx(0.46)


def test_weighted_intensity_rounds_to_two_decimals() -> None:
    assert weighted_intensity(0.3, [0.1, 0.2, 0.9]) == pytest.approx(0.43)
    assert weighted_intensity(0.7, []) == 0.7


def test_smoothing_window_reads_only_newest_entries() -> None:
    window = SmoothingWindow(size=2)
    for mood in ("scary", "scary", "scary", "calm", "calm"):
        window = window.append(_tuple(mood=mood))

    assert len(window) == 5
    assert [item.mood for item in window.recent()] == ["calm", "calm"]
    assert window.smooth(_tuple(mood="scary")).mood == "calm"


def test_smoothing_window_append_returns_new_window() -> None:
    window = SmoothingWindow()
    grown = window.append(_tuple())

    assert len(window) == 0
    assert len(grown) == 1
