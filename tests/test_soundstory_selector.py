from __future__ import annotations

import itertools

import pytest

from soundstory.schema import MOODS, NARRATIVE_EVENTS, SETTINGS, AttributeTuple
from soundstory.selector import (
    AMBIENCE_TABLE,
    MUSIC_TABLE,
    NEUTRAL_AMBIENT_TRACK,
    NEUTRAL_MUSIC_TRACK,
    NEUTRAL_SFX_TRACK,
    SFX_TABLE,
    all_table_track_ids,
    ambient_track_for,
    intensity_bucket,
    music_track_for,
    select,
    sfx_tracks_for,
)


@pytest.mark.parametrize(
    ("intensity", "bucket"),
    [
        (0.0, "low"),
        (0.329999, "low"),
        (0.33, "mid"),
        (0.5, "mid"),
        (0.669999, "mid"),
        (0.67, "high"),
        (1.0, "high"),
    ],
)
def test_intensity_bucket_boundaries(intensity: float, bucket: str) -> None:
    assert intensity_bucket(intensity) == bucket


def test_select_is_total_over_every_label_combination() -> None:
    for mood, setting, event in itertools.product(MOODS, SETTINGS, NARRATIVE_EVENTS):
        for intensity in (0.0, 0.33, 0.5, 0.67, 1.0):
            selection = select(
                AttributeTuple(
                    mood=mood,
                    setting=setting,
                    intensity=intensity,
                    narrative_event=event,
                )
            )
            assert selection.music_track
            assert selection.ambient_track
            assert selection.sfx_tracks
            assert all(selection.sfx_tracks)


def test_tables_are_dense() -> None:
    assert set(MUSIC_TABLE) == set(MOODS)
    assert all(set(row) == set(SETTINGS) for row in MUSIC_TABLE.values())
    assert set(AMBIENCE_TABLE) == set(SETTINGS)
    assert set(SFX_TABLE) == set(NARRATIVE_EVENTS)
    for row in SFX_TABLE.values():
        assert set(row) == {"low", "mid", "high"}
        assert all(len(tracks) == 3 for tracks in row.values())


def test_select_is_deterministic() -> None:
    attributes = AttributeTuple(mood="tense", setting="storm", intensity=0.5, narrative_event="danger")

    first = select(attributes)
    second = select(attributes)

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_select_epic_castle_battle() -> None:
    selection = select(
        AttributeTuple(mood="epic", setting="castle", intensity=0.9, narrative_event="battle")
    )

    assert selection.music_track == MUSIC_TABLE["epic"]["castle"] == "epic-castle-war"
    assert selection.ambient_track == AMBIENCE_TABLE["castle"]["high"] == "castle-alarm-bells"
    assert selection.sfx_tracks == SFX_TABLE["battle"]["high"]


def test_music_ignores_intensity() -> None:
    quiet = select(AttributeTuple(mood="cozy", setting="village", intensity=0.0, narrative_event="magic"))
    loud = select(AttributeTuple(mood="cozy", setting="village", intensity=1.0, narrative_event="magic"))

    assert quiet.music_track == loud.music_track == "cozy-village-tavern"
    assert quiet.ambient_track != loud.ambient_track


def test_unknown_keys_fall_back_to_neutral_defaults() -> None:
    assert music_track_for("grumpy", "forest") == NEUTRAL_MUSIC_TRACK
    assert music_track_for("calm", "moon") == NEUTRAL_MUSIC_TRACK
    assert ambient_track_for("moon", "low") == NEUTRAL_AMBIENT_TRACK
    assert sfx_tracks_for("nap", "high") == (NEUTRAL_SFX_TRACK,)


def test_all_table_track_ids_covers_defaults() -> None:
    ids = all_table_track_ids()

    assert {NEUTRAL_MUSIC_TRACK, NEUTRAL_AMBIENT_TRACK, NEUTRAL_SFX_TRACK} <= ids
    assert "epic-castle-war" in ids
    assert "battle-horns" in ids


def test_selection_payload_uses_store_keys() -> None:
    selection = select(AttributeTuple(mood="calm", setting="cave", intensity=0.1, narrative_event="discovery"))

    assert selection.as_payload() == {
        "musicTrack": "serene-cave-whisper",
        "ambientTrack": "cave-peaceful-dripping",
        "sfxSuggestions": ["soft-gasp", "gentle-chime", "door-creaks"],
    }
