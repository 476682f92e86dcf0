"""Shared schema definitions for narration analysis and soundscape selection.

This module is the single source of truth for the closed label sets the
classifier may emit and for the immutable records that flow between the
smoother, the selector, the store and the audio layer manager.
"""

from __future__ import annotations

import math
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Core label types
Mood = Literal["calm", "mysterious", "tense", "scary", "epic", "cozy", "sad", "whimsical"]
Setting = Literal[
    "forest",
    "dungeon",
    "cave",
    "castle",
    "village",
    "night",
    "storm",
    "fantasy",
    "space",
]
NarrativeEvent = Literal["exploration", "danger", "battle", "magic", "discovery", "resolution"]
IntensityBucket = Literal["low", "mid", "high"]
StoryPreset = Literal["D&D Adventure", "Bedtime Story", "Fantasy", "Horror", "Cozy"]
LayerName = Literal["music", "ambience"]

MOODS: tuple[Mood, ...] = get_args(Mood)
SETTINGS: tuple[Setting, ...] = get_args(Setting)
NARRATIVE_EVENTS: tuple[NarrativeEvent, ...] = get_args(NarrativeEvent)
INTENSITY_BUCKETS: tuple[IntensityBucket, ...] = get_args(IntensityBucket)
STORY_PRESETS: tuple[StoryPreset, ...] = get_args(StoryPreset)
LAYER_NAMES: tuple[LayerName, ...] = get_args(LayerName)
DEFAULT_PRESET: StoryPreset = "Fantasy"

# Field descriptions (shared by the classifier prompt and the JSON schema)
ATTRIBUTE_DESC: dict[str, str] = {
    "mood": "Emotional tone of the narration.",
    "setting": "Setting or location being described.",
    "intensity": "Intensity of the action or emotion, 0.0 (quiet) to 1.0 (extreme).",
    "narrative_event": "Type of narrative event occurring.",
}


class AttributeTuple(BaseModel):
    """The four-field classification of one narration chunk."""

    mood: Mood = Field(description=ATTRIBUTE_DESC["mood"])
    setting: Setting = Field(description=ATTRIBUTE_DESC["setting"])
    intensity: float = Field(description=ATTRIBUTE_DESC["intensity"])
    narrative_event: NarrativeEvent = Field(
        alias="narrativeEvent",
        description=ATTRIBUTE_DESC["narrative_event"],
    )

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @field_validator("intensity", mode="before")
    @classmethod
    def _clamp_intensity(cls, value: Any) -> float:
        # Classifier output outside [0, 1] is clamped rather than rejected.
        if isinstance(value, bool):
            raise ValueError("intensity must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("intensity must be a number") from exc
        if math.isnan(number):
            raise ValueError("intensity must not be NaN")
        return min(1.0, max(0.0, number))

    def describe(self) -> str:
        return (
            f"Mood: {self.mood}, Setting: {self.setting}, "
            f"Intensity: {self.intensity}, Event: {self.narrative_event}"
        )


class SoundscapeSelection(BaseModel):
    """Concrete track ids picked for one accepted attribute tuple."""

    music_track: str
    ambient_track: str
    sfx_tracks: tuple[str, ...]

    model_config = ConfigDict(frozen=True, extra="forbid")

    def as_payload(self) -> dict[str, Any]:
        return {
            "musicTrack": self.music_track,
            "ambientTrack": self.ambient_track,
            "sfxSuggestions": list(self.sfx_tracks),
        }
