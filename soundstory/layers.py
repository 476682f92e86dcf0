"""Audio layer management for a storytelling session.

The manager owns two persistent looping layers (music, ambience) and a
self-pruning set of one-shot sound effects. Each persistent layer runs a small
crossfade state machine::

    idle -> loading -> fading_in -> steady
    steady -> fading_out -> loading -> fading_in -> steady

Transitions on one layer are serialized by a per-layer lock, so a selection
that arrives mid-crossfade waits for the running transition and is then
evaluated against the settled layer; the final state always matches the most
recent request. ``stop_all`` does not wait for that lock: it bumps the layer
generation so an in-flight transition abandons its work, detaches whatever
the layer currently references, then fades that sound out and unloads it. The
layer reads as idle from the moment the stop begins.

Audio failures never escape ``apply_selection``; a layer that fails to load
falls back to ``idle``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .backend import AudioBackend, SoundHandle
from .catalog import TrackCatalog
from .config import SoundStoryConfig
from .errors import AudioSystemError, InvalidConfigError, UnresolvedTrackError
from .schema import LayerName, SoundscapeSelection
from .selector import NEUTRAL_AMBIENT_TRACK, NEUTRAL_MUSIC_TRACK

_LOGGER = logging.getLogger("soundstory.layers")

LayerPhase = Literal["idle", "fading_out", "loading", "fading_in", "steady"]

_NEUTRAL_TRACKS: dict[LayerName, str] = {
    "music": NEUTRAL_MUSIC_TRACK,
    "ambience": NEUTRAL_AMBIENT_TRACK,
}


def _clamp_volume(volume: float) -> float:
    return min(1.0, max(0.0, float(volume)))


@dataclass(slots=True)
class AudioLayer:
    """Mutable state of one persistent layer; only the crossfade protocol touches it."""

    name: LayerName
    target_volume: float
    current_track_id: str | None = None
    is_playing: bool = False
    current_volume: float = 0.0
    phase: LayerPhase = "idle"
    sound: SoundHandle | None = field(default=None, repr=False)
    generation: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def reset(self) -> None:
        self.sound = None
        self.current_track_id = None
        self.is_playing = False
        self.current_volume = 0.0
        self.phase = "idle"


class LayerSnapshot(BaseModel):
    name: LayerName
    current_track_id: str | None
    is_playing: bool
    current_volume: float
    target_volume: float
    phase: LayerPhase

    model_config = ConfigDict(frozen=True)


class AudioLayerManager:
    """Session-scoped owner of the music/ambience layers and one-shot effects.

    Example:
        manager = AudioLayerManager(SoundDeviceBackend(), TrackCatalog.from_directory("sounds"))
        await manager.initialize()
        await manager.apply_selection(select(attributes))
        ...
        await manager.cleanup()
    """

    def __init__(
        self,
        backend: AudioBackend,
        catalog: TrackCatalog,
        *,
        config: SoundStoryConfig | None = None,
    ) -> None:
        self._backend = backend
        self._catalog = catalog
        self._config = config or SoundStoryConfig()
        self._layers: dict[LayerName, AudioLayer] = {
            "music": AudioLayer("music", target_volume=self._config.music_volume),
            "ambience": AudioLayer("ambience", target_volume=self._config.ambience_volume),
        }
        self._sfx_volume = self._config.sfx_volume
        self._effects: set[SoundHandle] = set()
        self._effects_generation = 0
        self._background: set[asyncio.Task[None]] = set()
        self._initialized = False
        self._audio_error: AudioSystemError | None = None
        self._load_count = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def audio_error(self) -> AudioSystemError | None:
        """Initialization failure, if any; playback is a no-op while set."""
        return self._audio_error

    async def initialize(self) -> None:
        if self._initialized or self._audio_error is not None:
            return
        _LOGGER.info("Initializing audio system")
        try:
            await self._backend.configure()
        except AudioSystemError as exc:
            self._audio_error = exc
            _LOGGER.error("Failed to initialize audio: %s", exc)
            raise
        except Exception as exc:
            self._audio_error = AudioSystemError(str(exc))
            _LOGGER.error("Failed to initialize audio: %s", exc, exc_info=True)
            raise self._audio_error from exc
        self._initialized = True
        _LOGGER.info("Audio system initialized")

    async def stop_all(self) -> None:
        """Fade out and unload both layers and every outstanding effect."""

        _LOGGER.info("Stopping all audio")
        self._effects_generation += 1
        results = await asyncio.gather(
            *(self._stop_layer(layer) for layer in self._layers.values()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                _LOGGER.warning("Stopping layer failed: %s", result)
        effects = list(self._effects)
        self._effects.clear()
        for sound in effects:
            await self._unload_quietly(sound)

    async def cleanup(self) -> None:
        _LOGGER.info("Cleaning up audio resources")
        await self.stop_all()
        for task in list(self._background):
            task.cancel()
        if self._initialized:
            try:
                await self._backend.aclose()
            except Exception as exc:
                _LOGGER.warning("Closing audio backend failed: %s", exc, exc_info=True)
        self._initialized = False
        self._audio_error = None

    # =========================================================================
    # Volume control
    # =========================================================================

    async def set_layer_volume(self, layer: LayerName, volume: float) -> None:
        state = self._layer(layer)
        volume = _clamp_volume(volume)
        _LOGGER.debug("Setting %s volume to %.2f", layer, volume)
        state.target_volume = volume
        # A fade-out owns the volume until the old sound is unloaded.
        if state.sound is None or state.phase == "fading_out":
            return
        try:
            await state.sound.set_volume(volume)
            state.current_volume = volume
        except Exception as exc:
            _LOGGER.warning("Setting %s volume failed: %s", layer, exc, exc_info=True)

    async def set_music_volume(self, volume: float) -> None:
        await self.set_layer_volume("music", volume)

    async def set_ambience_volume(self, volume: float) -> None:
        await self.set_layer_volume("ambience", volume)

    def set_sfx_volume(self, volume: float) -> None:
        """Applies to effects triggered after this call only."""
        self._sfx_volume = _clamp_volume(volume)
        _LOGGER.debug("Setting sfx volume to %.2f", self._sfx_volume)

    @property
    def sfx_volume(self) -> float:
        return self._sfx_volume

    # =========================================================================
    # Queries
    # =========================================================================

    def snapshot(self, layer: LayerName) -> LayerSnapshot:
        state = self._layer(layer)
        return LayerSnapshot(
            name=state.name,
            current_track_id=state.current_track_id,
            is_playing=state.is_playing,
            current_volume=state.current_volume,
            target_volume=state.target_volume,
            phase=state.phase,
        )

    @property
    def active_effects(self) -> int:
        return len(self._effects)

    @property
    def load_count(self) -> int:
        """Number of backend loads issued so far (layers and effects)."""
        return self._load_count

    # =========================================================================
    # Selection
    # =========================================================================

    async def apply_selection(self, selection: SoundscapeSelection) -> None:
        """Crossfade layers whose track changed and fire the selection's effects."""

        if not self._initialized:
            if self._audio_error is not None:
                _LOGGER.debug("Audio unavailable; ignoring selection %s", selection.music_track)
                return
            try:
                await self.initialize()
            except AudioSystemError:
                return

        _LOGGER.info(
            "Updating soundscape: music=%s ambience=%s sfx=%s",
            selection.music_track,
            selection.ambient_track,
            ", ".join(selection.sfx_tracks),
        )
        results = await asyncio.gather(
            self._crossfade(self._layers["music"], selection.music_track),
            self._crossfade(self._layers["ambience"], selection.ambient_track),
            self._play_effects(selection.sfx_tracks),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                _LOGGER.error("Soundscape update failed: %s", result, exc_info=result)

    # =========================================================================
    # Crossfade state machine
    # =========================================================================

    def _layer(self, layer: LayerName) -> AudioLayer:
        try:
            return self._layers[layer]
        except KeyError:
            raise InvalidConfigError(f"unknown layer: {layer!r}") from None

    def _resolve_layer_track(self, layer: AudioLayer, track_id: str) -> tuple[str, str] | None:
        neutral = _NEUTRAL_TRACKS[layer.name]
        try:
            return track_id, self._catalog.resolve(track_id)
        except UnresolvedTrackError:
            _LOGGER.warning("Track not found: %s; falling back to %s", track_id, neutral)
        try:
            return neutral, self._catalog.resolve(neutral)
        except UnresolvedTrackError:
            _LOGGER.warning("Neutral %s track %s not found; keeping current track", layer.name, neutral)
            return None

    def _is_current(self, layer: AudioLayer, track_id: str) -> bool:
        return layer.current_track_id == track_id and layer.is_playing

    async def _crossfade(self, layer: AudioLayer, track_id: str) -> None:
        async with layer.lock:
            if self._is_current(layer, track_id):
                _LOGGER.debug("Track already playing on %s: %s", layer.name, track_id)
                return
            resolved = self._resolve_layer_track(layer, track_id)
            if resolved is None:
                return
            target_id, uri = resolved
            if self._is_current(layer, target_id):
                return

            generation = layer.generation
            half = self._config.crossfade_seconds(layer.name) / 2
            _LOGGER.info("Crossfading %s to %s", layer.name, target_id)
            try:
                if layer.sound is not None:
                    layer.phase = "fading_out"
                    if not await self._fade(layer, 0.0, half, generation):
                        return
                    old, layer.sound = layer.sound, None
                    layer.is_playing = False
                    layer.current_track_id = None
                    if old is not None:
                        await old.unload()

                layer.phase = "loading"
                sound = await self._load(uri, volume=0.0, looping=True)
                if layer.generation != generation:
                    await self._unload_quietly(sound)
                    return
                layer.sound = sound
                layer.current_track_id = target_id
                layer.is_playing = True
                layer.current_volume = 0.0

                layer.phase = "fading_in"
                if await self._fade(layer, None, half, generation):
                    layer.phase = "steady"
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                _LOGGER.error("Error crossfading %s to %s: %s", layer.name, target_id, exc, exc_info=True)
                if layer.generation == generation:
                    stale = layer.sound
                    layer.reset()
                    if stale is not None:
                        await self._unload_quietly(stale)

    async def _fade(
        self,
        layer: AudioLayer,
        end: float | None,
        duration: float,
        generation: int,
    ) -> bool:
        """Linear ramp to ``end`` (or the live target volume when ``None``).

        Returns ``False`` when the layer was stopped mid-ramp.
        """

        steps = self._config.fade_steps
        step_seconds = duration / steps
        start = layer.current_volume
        for index in range(steps + 1):
            sound = layer.sound
            if layer.generation != generation or sound is None:
                return False
            goal = layer.target_volume if end is None else end
            volume = _clamp_volume(start + (goal - start) * index / steps)
            await sound.set_volume(volume)
            layer.current_volume = volume
            if index < steps:
                await asyncio.sleep(step_seconds)
        return layer.generation == generation

    async def _stop_layer(self, layer: AudioLayer) -> None:
        # The layer is released before the fade so a selection arriving
        # mid-stop starts from idle instead of matching the dying track.
        layer.generation += 1
        sound, start = layer.sound, layer.current_volume
        layer.reset()
        if sound is None:
            return
        try:
            await self._fade_out_detached(sound, start, self._config.stop_fade_seconds)
        except Exception as exc:
            _LOGGER.warning("Fade-out of %s failed: %s", layer.name, exc, exc_info=True)
        finally:
            await self._unload_quietly(sound)

    async def _fade_out_detached(self, sound: SoundHandle, start: float, duration: float) -> None:
        steps = self._config.fade_steps
        step_seconds = duration / steps
        for index in range(steps + 1):
            await sound.set_volume(_clamp_volume(start * (1 - index / steps)))
            if index < steps:
                await asyncio.sleep(step_seconds)

    async def _load(self, uri: str, *, volume: float, looping: bool) -> SoundHandle:
        self._load_count += 1
        timeout = self._config.load_timeout_seconds
        if timeout is None:
            return await self._backend.load(uri, volume=volume, looping=looping)
        return await asyncio.wait_for(
            self._backend.load(uri, volume=volume, looping=looping),
            timeout=timeout,
        )

    async def _unload_quietly(self, sound: SoundHandle) -> None:
        try:
            await sound.unload()
        except Exception as exc:
            _LOGGER.warning("Unloading sound failed: %s", exc, exc_info=True)

    # =========================================================================
    # One-shot effects
    # =========================================================================

    async def _play_effects(self, track_ids: Sequence[str]) -> None:
        if not track_ids:
            return
        await asyncio.gather(*(self._play_effect(track_id) for track_id in track_ids))

    async def _play_effect(self, track_id: str) -> None:
        try:
            uri = self._catalog.resolve(track_id)
        except UnresolvedTrackError:
            _LOGGER.warning("SFX not found: %s", track_id)
            return

        generation = self._effects_generation
        volume = self._sfx_volume
        try:
            _LOGGER.debug("Playing sound effect: %s", track_id)
            sound = await self._load(uri, volume=volume, looping=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _LOGGER.error("Error playing sound effect %s: %s", track_id, exc, exc_info=True)
            return

        if generation != self._effects_generation:
            await self._unload_quietly(sound)
            return
        self._effects.add(sound)
        loop = asyncio.get_running_loop()

        def _on_done() -> None:
            try:
                loop.call_soon_threadsafe(self._release_effect, sound)
            except RuntimeError:
                _LOGGER.debug("Event loop closed before effect %s finished", track_id)

        sound.add_done_callback(_on_done)

    def _release_effect(self, sound: SoundHandle) -> None:
        if sound not in self._effects:
            return
        self._effects.discard(sound)
        task = asyncio.get_running_loop().create_task(self._unload_quietly(sound))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
