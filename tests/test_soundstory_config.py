from __future__ import annotations

from pathlib import Path

import pytest

from soundstory.config import SoundStoryConfig
from soundstory.errors import InvalidConfigError


def test_defaults_match_playback_constants() -> None:
    config = SoundStoryConfig()

    assert config.layer_volume("music") == 0.7
    assert config.layer_volume("ambience") == 0.5
    assert config.sfx_volume == 0.6
    assert config.crossfade_seconds("music") == 3.0
    assert config.crossfade_seconds("ambience") == 2.0
    assert config.stop_fade_seconds == 1.0
    assert config.fade_steps == 20
    assert config.smoothing_window == 5


def test_unknown_layer_is_rejected() -> None:
    config = SoundStoryConfig()

    with pytest.raises(InvalidConfigError):
        config.crossfade_seconds("sfx")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "overrides",
    [
        {"music_volume": 1.5},
        {"fade_steps": 0},
        {"classifier_model": "  "},
        {"unknown_field": True},
    ],
)
def test_build_wraps_validation_errors(overrides: dict[str, object]) -> None:
    with pytest.raises(InvalidConfigError):
        SoundStoryConfig.build(**overrides)


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SOUNDSTORY_MUSIC_VOLUME", "0.4")
    monkeypatch.setenv("SOUNDSTORY_FADE_STEPS", "10")
    monkeypatch.setenv("SOUNDSTORY_CLASSIFIER_MODEL", "anthropic/claude-3-haiku")
    monkeypatch.setenv("SOUNDSTORY_SOUNDS_DIR", str(tmp_path))

    config = SoundStoryConfig.from_env()

    assert config.music_volume == 0.4
    assert config.fade_steps == 10
    assert config.classifier_model == "anthropic/claude-3-haiku"
    assert config.sounds_dir == tmp_path


def test_from_env_ignores_blank_and_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOUNDSTORY_SFX_VOLUME", "loud")
    monkeypatch.setenv("SOUNDSTORY_SMOOTHING_WINDOW", "")

    config = SoundStoryConfig.from_env()

    assert config.sfx_volume == 0.6
    assert config.smoothing_window == 5


def test_overrides_beat_env_and_none_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOUNDSTORY_CLASSIFIER_MODEL", "from-env")

    assert SoundStoryConfig.from_env(classifier_model="explicit").classifier_model == "explicit"
    assert SoundStoryConfig.from_env(classifier_model=None).classifier_model == "from-env"


def test_from_env_invalid_value_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOUNDSTORY_AMBIENCE_VOLUME", "2")

    with pytest.raises(InvalidConfigError):
        SoundStoryConfig.from_env()


def test_config_is_frozen() -> None:
    config = SoundStoryConfig()

    with pytest.raises(Exception):
        config.music_volume = 0.1  # type: ignore[misc]
