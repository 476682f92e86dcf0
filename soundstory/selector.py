from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from .schema import (
    AttributeTuple,
    IntensityBucket,
    Mood,
    NarrativeEvent,
    Setting,
    SoundscapeSelection,
)

_LOGGER = logging.getLogger("soundstory.selector")

NEUTRAL_MUSIC_TRACK = "ambient-neutral-theme"
NEUTRAL_AMBIENT_TRACK = "ambient-neutral"
NEUTRAL_SFX_TRACK = "neutral-ambience"

LOW_INTENSITY_CEILING = 0.33
MID_INTENSITY_CEILING = 0.67


def _freeze(table: Mapping[str, Mapping[str, object]]) -> Mapping[str, Mapping[str, object]]:
    return MappingProxyType({key: MappingProxyType(dict(row)) for key, row in table.items()})


# -----------------------------------------------------------------------------
# Music: mood x setting
# -----------------------------------------------------------------------------

MUSIC_TABLE: Mapping[Mood, Mapping[Setting, str]] = _freeze(  # type: ignore[assignment]
    {
        "calm": {
            "forest": "peaceful-forest-theme",
            "dungeon": "subtle-dungeon-calm",
            "cave": "serene-cave-whisper",
            "castle": "noble-throne-room",
            "village": "village-morning-bells",
            "night": "peaceful-night-breeze",
            "storm": "gentle-rain-meditation",
            "fantasy": "fantasy-calm-wandering",
            "space": "ambient-space-drift",
        },
        "mysterious": {
            "forest": "mysterious-forest-secrets",
            "dungeon": "mysterious-dungeon-theme",
            "cave": "eerie-cave-mysteries",
            "castle": "haunted-castle-whispers",
            "village": "village-twilight-mystery",
            "night": "dark-night-enigma",
            "storm": "stormy-mystery-tension",
            "fantasy": "arcane-fantasy-magic",
            "space": "cosmic-mystery-unknown",
        },
        "tense": {
            "forest": "tense-forest-danger",
            "dungeon": "tense-dungeon-chase",
            "cave": "tense-cave-collapse",
            "castle": "tense-castle-siege",
            "village": "tense-village-invasion",
            "night": "tense-night-hunt",
            "storm": "intense-storm-brewing",
            "fantasy": "tense-fantasy-peril",
            "space": "tense-space-anomaly",
        },
        "scary": {
            "forest": "scary-forest-creatures",
            "dungeon": "scary-dungeon-horror",
            "cave": "scary-cave-descent",
            "castle": "scary-castle-haunted",
            "village": "scary-village-plague",
            "night": "scary-night-terror",
            "storm": "scary-storm-fury",
            "fantasy": "scary-fantasy-demon",
            "space": "scary-space-void",
        },
        "epic": {
            "forest": "epic-forest-triumph",
            "dungeon": "epic-dungeon-conquest",
            "cave": "epic-cave-victory",
            "castle": "epic-castle-war",
            "village": "epic-village-defense",
            "night": "epic-night-hero",
            "storm": "epic-storm-power",
            "fantasy": "epic-fantasy-legend",
            "space": "epic-space-exploration",
        },
        "cozy": {
            "forest": "cozy-forest-cabin",
            "dungeon": "cozy-dungeon-fireplace",
            "cave": "cozy-cave-shelter",
            "castle": "cozy-castle-library",
            "village": "cozy-village-tavern",
            "night": "cozy-night-fireplace",
            "storm": "cozy-storm-shelter",
            "fantasy": "cozy-fantasy-hearth",
            "space": "cozy-space-station",
        },
        "sad": {
            "forest": "sad-forest-solitude",
            "dungeon": "sad-dungeon-despair",
            "cave": "sad-cave-mourning",
            "castle": "sad-castle-loss",
            "village": "sad-village-farewell",
            "night": "sad-night-longing",
            "storm": "sad-storm-sorrow",
            "fantasy": "sad-fantasy-tragedy",
            "space": "sad-space-isolation",
        },
        "whimsical": {
            "forest": "whimsical-forest-magic",
            "dungeon": "whimsical-dungeon-tricks",
            "cave": "whimsical-cave-wonder",
            "castle": "whimsical-castle-enchanted",
            "village": "whimsical-village-festival",
            "night": "whimsical-night-dreams",
            "storm": "whimsical-storm-frolics",
            "fantasy": "whimsical-fantasy-sprites",
            "space": "whimsical-space-wonders",
        },
    }
)

# -----------------------------------------------------------------------------
# Ambience: setting x intensity bucket
# -----------------------------------------------------------------------------

AMBIENCE_TABLE: Mapping[Setting, Mapping[IntensityBucket, str]] = _freeze(  # type: ignore[assignment]
    {
        "forest": {
            "low": "forest-light-breeze",
            "mid": "forest-rustling-leaves",
            "high": "forest-storm-winds",
        },
        "dungeon": {
            "low": "dungeon-silence-echo",
            "mid": "dungeon-dripping-water",
            "high": "dungeon-rumbling-collapse",
        },
        "cave": {
            "low": "cave-peaceful-dripping",
            "mid": "cave-flowing-water",
            "high": "cave-quaking-tremor",
        },
        "castle": {
            "low": "castle-quiet-halls",
            "mid": "castle-torches-flickering",
            "high": "castle-alarm-bells",
        },
        "village": {
            "low": "village-quiet-morning",
            "mid": "village-market-bustle",
            "high": "village-chaos-screams",
        },
        "night": {
            "low": "night-quiet-stars",
            "mid": "night-crickets-wind",
            "high": "night-storm-thunder",
        },
        "storm": {
            "low": "storm-distant-rumble",
            "mid": "storm-heavy-rain",
            "high": "storm-violent-lightning",
        },
        "fantasy": {
            "low": "fantasy-magical-hum",
            "mid": "fantasy-spell-casting",
            "high": "fantasy-arcane-explosion",
        },
        "space": {
            "low": "space-void-silence",
            "mid": "space-stellar-winds",
            "high": "space-cosmic-storm",
        },
    }
)

# -----------------------------------------------------------------------------
# Sound effects: narrative event x intensity bucket, three ids per entry
# -----------------------------------------------------------------------------

SFX_TABLE: Mapping[NarrativeEvent, Mapping[IntensityBucket, tuple[str, ...]]] = _freeze(  # type: ignore[assignment]
    {
        "exploration": {
            "low": ("footsteps-careful", "distant-birds", "gentle-ambience"),
            "mid": ("footsteps-normal", "item-discovery", "door-opening"),
            "high": ("footsteps-running", "object-collision", "sudden-gasp"),
        },
        "danger": {
            "low": ("heartbeat-slow", "breathing-heavy", "warning-whisper"),
            "mid": ("heartbeat-fast", "weapon-draw", "creature-growl"),
            "high": ("heartbeat-pounding", "scream-distant", "weapon-clash"),
        },
        "battle": {
            "low": ("sword-swing", "armor-clink", "grunts-effort"),
            "mid": ("sword-clash-combo", "shield-impact", "spellcast"),
            "high": ("massive-explosion", "repeated-clashing", "battle-horns"),
        },
        "magic": {
            "low": ("magic-spark", "spell-whisper", "energy-hum"),
            "mid": ("spell-casting-glow", "arcane-surge", "elemental-shift"),
            "high": ("explosion-magic", "reality-tear", "power-surge"),
        },
        "discovery": {
            "low": ("soft-gasp", "gentle-chime", "door-creaks"),
            "mid": ("triumphant-horn", "treasure-jingle", "revelation-sound"),
            "high": ("celebration-fanfare", "golden-shower", "epic-reveal"),
        },
        "resolution": {
            "low": ("soft-resolution-music", "peaceful-sigh", "final-bell"),
            "mid": ("resolution-completion", "sealing-spell", "victory-chime"),
            "high": ("victory-fanfare", "world-shift", "fate-sealed"),
        },
    }
)


def intensity_bucket(intensity: float) -> IntensityBucket:
    if intensity < LOW_INTENSITY_CEILING:
        return "low"
    if intensity < MID_INTENSITY_CEILING:
        return "mid"
    return "high"


def music_track_for(mood: str, setting: str) -> str:
    row = MUSIC_TABLE.get(mood)  # type: ignore[call-overload]
    track = row.get(setting) if row is not None else None
    if track is None:
        _LOGGER.debug("No music entry for %s/%s; using %s", mood, setting, NEUTRAL_MUSIC_TRACK)
        return NEUTRAL_MUSIC_TRACK
    return track


def ambient_track_for(setting: str, bucket: IntensityBucket) -> str:
    row = AMBIENCE_TABLE.get(setting)  # type: ignore[call-overload]
    track = row.get(bucket) if row is not None else None
    if track is None:
        _LOGGER.debug("No ambience entry for %s/%s; using %s", setting, bucket, NEUTRAL_AMBIENT_TRACK)
        return NEUTRAL_AMBIENT_TRACK
    return track


def sfx_tracks_for(event: str, bucket: IntensityBucket) -> tuple[str, ...]:
    row = SFX_TABLE.get(event)  # type: ignore[call-overload]
    tracks = row.get(bucket) if row is not None else None
    if not tracks:
        _LOGGER.debug("No sfx entry for %s/%s; using %s", event, bucket, NEUTRAL_SFX_TRACK)
        return (NEUTRAL_SFX_TRACK,)
    return tracks


def select(attributes: AttributeTuple) -> SoundscapeSelection:
    """Map an accepted attribute tuple to concrete track ids.

    Total and side-effect free: the same tuple always yields the same selection.
    """

    bucket = intensity_bucket(attributes.intensity)
    return SoundscapeSelection(
        music_track=music_track_for(attributes.mood, attributes.setting),
        ambient_track=ambient_track_for(attributes.setting, bucket),
        sfx_tracks=sfx_tracks_for(attributes.narrative_event, bucket),
    )


def all_table_track_ids() -> frozenset[str]:
    """Every id the selector can emit, neutral defaults included."""

    ids: set[str] = {NEUTRAL_MUSIC_TRACK, NEUTRAL_AMBIENT_TRACK, NEUTRAL_SFX_TRACK}
    for music_row in MUSIC_TABLE.values():
        ids.update(music_row.values())
    for ambience_row in AMBIENCE_TABLE.values():
        ids.update(ambience_row.values())
    for sfx_row in SFX_TABLE.values():
        for tracks in sfx_row.values():
            ids.update(tracks)
    return frozenset(ids)
