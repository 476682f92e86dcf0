from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from soundstory.backend import SoundDeviceBackend, decode_file
from soundstory.errors import AudioSystemError


def _write_tone(path: Path, *, sample_rate: int, frames: int, channels: int = 1) -> None:
    samples = np.full((frames, channels), 0.5, dtype=np.float32)
    sf.write(path, samples, sample_rate)


def test_decode_file_downmixes_to_mono(tmp_path: Path) -> None:
    path = tmp_path / "stereo.wav"
    _write_tone(path, sample_rate=44_100, frames=100, channels=2)

    samples = decode_file(str(path))

    assert samples.dtype == np.float32
    assert samples.shape == (100,)
    assert np.allclose(samples, 0.5, atol=1e-3)


def test_decode_file_resamples(tmp_path: Path) -> None:
    path = tmp_path / "low.wav"
    _write_tone(path, sample_rate=22_050, frames=2_205)

    samples = decode_file(str(path), sample_rate=44_100)

    assert samples.size == 4_410
    assert np.allclose(samples, 0.5, atol=1e-3)


def test_decode_file_unreadable_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.wav"
    path.write_bytes(b"not audio")

    with pytest.raises(AudioSystemError, match="could not decode"):
        decode_file(str(path))


@pytest.mark.asyncio
async def test_configure_without_sounddevice_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "sounddevice", None)

    with pytest.raises(AudioSystemError, match="sounddevice"):
        await SoundDeviceBackend().configure()


@pytest.mark.asyncio
async def test_load_requires_configured_output(tmp_path: Path) -> None:
    path = tmp_path / "tone.wav"
    _write_tone(path, sample_rate=44_100, frames=10)

    with pytest.raises(AudioSystemError, match="not configured"):
        await SoundDeviceBackend().load(str(path), volume=1.0, looping=False)


@pytest.mark.asyncio
async def test_mix_loops_and_retires_one_shots(tmp_path: Path) -> None:
    path = tmp_path / "tone.wav"
    _write_tone(path, sample_rate=44_100, frames=4)
    backend = SoundDeviceBackend()
    backend._stream = object()

    loop_voice = await backend.load(str(path), volume=0.5, looping=True)
    shot_voice = await backend.load(str(path), volume=1.0, looping=False)
    fired: list[str] = []
    shot_voice.add_done_callback(lambda: fired.append("shot"))

    first = backend.mix(6)

    assert np.allclose(first[:4], 0.75, atol=1e-3)
    assert np.allclose(first[4:], 0.25, atol=1e-3)
    assert fired == ["shot"]

    second = backend.mix(4)
    assert np.allclose(second, 0.25, atol=1e-3)

    late: list[str] = []
    shot_voice.add_done_callback(lambda: late.append("late"))
    assert late == ["late"]

    await loop_voice.set_volume(0.0)
    assert np.allclose(backend.mix(4), 0.0)

    await loop_voice.unload()
    assert np.allclose(backend.mix(4), 0.0)


@pytest.mark.asyncio
async def test_mix_clips_to_unit_range(tmp_path: Path) -> None:
    path = tmp_path / "tone.wav"
    _write_tone(path, sample_rate=44_100, frames=8)
    backend = SoundDeviceBackend()
    backend._stream = object()
    for _ in range(4):
        await backend.load(str(path), volume=1.0, looping=True)

    assert np.allclose(backend.mix(8), 1.0)


@pytest.mark.asyncio
async def test_aclose_drops_voices(tmp_path: Path) -> None:
    path = tmp_path / "tone.wav"
    _write_tone(path, sample_rate=44_100, frames=8)
    backend = SoundDeviceBackend()
    backend._stream = object()
    await backend.load(str(path), volume=1.0, looping=True)

    await backend.aclose()

    assert np.allclose(backend.mix(8), 0.0)
    with pytest.raises(AudioSystemError):
        await backend.load(str(path), volume=1.0, looping=True)
