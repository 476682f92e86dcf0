from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidConfigError
from .schema import LayerName

_LOGGER = logging.getLogger("soundstory.config")
_ENV_PREFIX = "SOUNDSTORY_"


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError:
        _LOGGER.warning("Ignoring non-numeric %s=%r", name, value)
        return None


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        _LOGGER.warning("Ignoring non-integer %s=%r", name, value)
        return None


def _env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


class SoundStoryConfig(BaseModel):
    """Runtime settings for the narration pipeline and the audio layers."""

    music_volume: float = Field(default=0.7, ge=0.0, le=1.0)
    ambience_volume: float = Field(default=0.5, ge=0.0, le=1.0)
    sfx_volume: float = Field(default=0.6, ge=0.0, le=1.0)

    music_crossfade_seconds: float = Field(default=3.0, ge=0.0)
    ambience_crossfade_seconds: float = Field(default=2.0, ge=0.0)
    stop_fade_seconds: float = Field(default=1.0, ge=0.0)
    fade_steps: int = Field(default=20, ge=1)

    smoothing_window: int = Field(default=5, ge=0)
    history_page_size: int = Field(default=50, ge=1)

    classifier_model: str = "openai/gpt-4o-mini"
    transcription_model: str = "whisper-1"
    classifier_timeout_seconds: float | None = Field(default=30.0, gt=0.0)
    load_timeout_seconds: float | None = Field(default=None, gt=0.0)

    sounds_dir: Path | None = None
    store_path: Path | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_models(self) -> SoundStoryConfig:
        if not self.classifier_model.strip():
            raise ValueError("classifier_model must not be empty")
        if not self.transcription_model.strip():
            raise ValueError("transcription_model must not be empty")
        return self

    def crossfade_seconds(self, layer: LayerName) -> float:
        match layer:
            case "music":
                return self.music_crossfade_seconds
            case "ambience":
                return self.ambience_crossfade_seconds
        raise InvalidConfigError(f"unknown layer: {layer!r}")

    def layer_volume(self, layer: LayerName) -> float:
        match layer:
            case "music":
                return self.music_volume
            case "ambience":
                return self.ambience_volume
        raise InvalidConfigError(f"unknown layer: {layer!r}")

    @classmethod
    def build(cls, **overrides: Any) -> SoundStoryConfig:
        try:
            return cls(**overrides)
        except ValidationError as exc:
            raise InvalidConfigError(str(exc)) from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> SoundStoryConfig:
        """Defaults, overlaid by ``SOUNDSTORY_*`` env vars, overlaid by ``overrides``."""

        readers: Mapping[str, Callable[[str], object | None]] = {
            "music_volume": _env_float,
            "ambience_volume": _env_float,
            "sfx_volume": _env_float,
            "music_crossfade_seconds": _env_float,
            "ambience_crossfade_seconds": _env_float,
            "stop_fade_seconds": _env_float,
            "fade_steps": _env_int,
            "smoothing_window": _env_int,
            "history_page_size": _env_int,
            "classifier_model": _env_str,
            "transcription_model": _env_str,
            "classifier_timeout_seconds": _env_float,
            "load_timeout_seconds": _env_float,
            "sounds_dir": _env_str,
            "store_path": _env_str,
        }
        values: dict[str, Any] = {}
        for field_name, reader in readers.items():
            value = reader(f"{_ENV_PREFIX}{field_name.upper()}")
            if value is not None:
                values[field_name] = value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.build(**values)
