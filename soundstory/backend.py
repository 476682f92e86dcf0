from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from .errors import AudioSystemError

_LOGGER = logging.getLogger("soundstory.backend")

FloatArray = NDArray[np.float32]

SAMPLE_RATE = 44_100
_BLOCK_SIZE = 1_024


class SoundHandle(Protocol):
    """A loaded, playing sound owned by the audio layer manager."""

    async def set_volume(self, volume: float) -> None: ...

    async def unload(self) -> None: ...

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once a non-looping sound finishes (any thread)."""
        ...


class AudioBackend(Protocol):
    async def configure(self) -> None: ...

    async def load(self, uri: str, *, volume: float, looping: bool) -> SoundHandle: ...

    async def aclose(self) -> None: ...


def _clamp_volume(volume: float) -> float:
    return min(1.0, max(0.0, float(volume)))


def decode_file(uri: str, *, sample_rate: int = SAMPLE_RATE) -> FloatArray:
    """Decode ``uri`` to mono float32 samples at ``sample_rate``."""

    try:
        import soundfile as sf  # type: ignore[import]
    except ImportError as exc:
        raise AudioSystemError("soundfile is not installed") from exc

    try:
        data, file_rate = sf.read(uri, dtype="float32", always_2d=True)
    except Exception as exc:
        raise AudioSystemError(f"could not decode {uri}: {exc}") from exc
    mono: FloatArray = np.asarray(data, dtype=np.float32).mean(axis=1).astype(np.float32)
    if int(file_rate) == sample_rate or mono.size == 0:
        return mono
    duration = mono.size / float(file_rate)
    target_size = max(1, int(round(duration * sample_rate)))
    source_times = np.linspace(0.0, duration, num=mono.size, endpoint=False)
    target_times = np.linspace(0.0, duration, num=target_size, endpoint=False)
    return np.interp(target_times, source_times, mono).astype(np.float32)


class _Voice:
    """One sound mixed into the shared output stream."""

    def __init__(
        self,
        backend: SoundDeviceBackend,
        samples: FloatArray,
        *,
        volume: float,
        looping: bool,
    ) -> None:
        self._backend = backend
        self._samples = samples
        self._volume = _clamp_volume(volume)
        self._looping = looping
        self._position = 0
        self._finished = False
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def finished(self) -> bool:
        return self._finished

    async def set_volume(self, volume: float) -> None:
        self._volume = _clamp_volume(volume)

    async def unload(self) -> None:
        self._backend._detach(self)

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._finished:
                self._callbacks.append(callback)
                return
        callback()

    def render(self, frames: int) -> FloatArray:
        out = np.zeros(frames, dtype=np.float32)
        total = self._samples.size
        if total == 0:
            self._finished = True
            return out
        filled = 0
        while filled < frames:
            take = min(frames - filled, total - self._position)
            out[filled : filled + take] = self._samples[self._position : self._position + take]
            filled += take
            self._position += take
            if self._position >= total:
                if not self._looping:
                    self._finished = True
                    break
                self._position = 0
        return out * np.float32(self._volume)

    def fire_done(self) -> None:
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                _LOGGER.warning("Sound done callback failed: %s", exc, exc_info=True)


class SoundDeviceBackend:
    """Mixes every loaded sound into a single mono ``sounddevice`` output stream."""

    def __init__(self, *, sample_rate: int = SAMPLE_RATE, block_size: int = _BLOCK_SIZE) -> None:
        self._sample_rate = sample_rate
        self._block_size = block_size
        self._stream: Any = None
        self._voices: list[_Voice] = []
        self._lock = threading.Lock()

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    async def configure(self) -> None:
        if self._stream is not None:
            return
        try:
            import sounddevice as sd  # type: ignore[import]
        except (ImportError, OSError) as exc:
            _LOGGER.warning("sounddevice not available: %s", exc, exc_info=True)
            raise AudioSystemError("Playback requires sounddevice (and a PortAudio device).") from exc
        try:
            stream = sd.OutputStream(
                samplerate=self._sample_rate,
                blocksize=self._block_size,
                channels=1,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except Exception as exc:
            raise AudioSystemError(f"could not open audio output: {exc}") from exc
        self._stream = stream
        _LOGGER.info("Audio output opened (sr=%d, block=%d)", self._sample_rate, self._block_size)

    async def load(self, uri: str, *, volume: float, looping: bool) -> SoundHandle:
        if self._stream is None:
            raise AudioSystemError("audio output is not configured")
        samples = await asyncio.to_thread(decode_file, uri, sample_rate=self._sample_rate)
        voice = _Voice(self, samples, volume=volume, looping=looping)
        with self._lock:
            self._voices.append(voice)
        return voice

    async def aclose(self) -> None:
        stream, self._stream = self._stream, None
        with self._lock:
            self._voices.clear()
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            _LOGGER.warning("Closing audio output failed: %s", exc, exc_info=True)

    def _detach(self, voice: _Voice) -> None:
        with self._lock:
            if voice in self._voices:
                self._voices.remove(voice)

    def mix(self, frames: int) -> FloatArray:
        """Render the next ``frames`` samples of the mix and retire finished one-shots."""

        mixed = np.zeros(frames, dtype=np.float32)
        done: list[_Voice] = []
        with self._lock:
            for voice in self._voices:
                mixed += voice.render(frames)
                if voice.finished:
                    done.append(voice)
            for voice in done:
                self._voices.remove(voice)
        for voice in done:
            voice.fire_done()
        return np.clip(mixed, -1.0, 1.0)

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        _ = time_info
        if status:
            _LOGGER.debug("Audio output status: %s", status)
        outdata[:, 0] = self.mix(frames)


def load_backend() -> AudioBackend:
    return SoundDeviceBackend()
