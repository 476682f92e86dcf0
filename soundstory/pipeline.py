from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, ConfigDict

from .classifier import AttributeClassifier
from .config import SoundStoryConfig
from .errors import AudioSystemError, ClassificationUnavailableError, TranscriptionError
from .layers import AudioLayerManager
from .schema import DEFAULT_PRESET, AttributeTuple, SoundscapeSelection, StoryPreset
from .selector import select
from .smoothing import SmoothingWindow
from .store import AnalysisRecord, SessionStore, StorySession
from .transcriber import Transcriber

_LOGGER = logging.getLogger("soundstory.pipeline")


class AnalysisOutcome(BaseModel):
    """Result of one accepted narration chunk."""

    tentative: AttributeTuple
    attributes: AttributeTuple
    selection: SoundscapeSelection
    record: AnalysisRecord

    model_config = ConfigDict(frozen=True)


class NarrationSession:
    """Drives transcript -> classifier -> smoother -> selector -> store/manager for one session.

    Calls to ``analyze`` are serialized so each smoothing pass sees the tuple
    accepted by the previous one, and ``apply_selection`` runs one at a time.
    """

    def __init__(
        self,
        store: SessionStore,
        classifier: AttributeClassifier,
        session_id: str,
        *,
        manager: AudioLayerManager | None = None,
        transcriber: Transcriber | None = None,
        config: SoundStoryConfig | None = None,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._session = store.get_session(session_id)
        self._manager = manager
        self._transcriber = transcriber
        self._config = config or SoundStoryConfig()
        self._lock = asyncio.Lock()
        self._audio_error: AudioSystemError | None = None

    @classmethod
    async def start(
        cls,
        store: SessionStore,
        classifier: AttributeClassifier,
        *,
        user_id: str | None = None,
        preset: StoryPreset = DEFAULT_PRESET,
        manager: AudioLayerManager | None = None,
        transcriber: Transcriber | None = None,
        config: SoundStoryConfig | None = None,
    ) -> NarrationSession:
        session = store.start_session(user_id=user_id, preset=preset)
        narration = cls(
            store,
            classifier,
            session.id,
            manager=manager,
            transcriber=transcriber,
            config=config,
        )
        if manager is not None:
            try:
                await manager.initialize()
            except AudioSystemError as exc:
                narration._audio_error = exc
                _LOGGER.warning("Continuing session %s without audio: %s", session.id, exc)
        return narration

    @property
    def session(self) -> StorySession:
        return self._session

    @property
    def audio_error(self) -> AudioSystemError | None:
        """Audio initialization failure to surface to the user once, if any."""
        return self._audio_error

    async def analyze(self, transcript: str) -> AnalysisOutcome | None:
        """Accept one narration chunk; ``None`` when no tuple was accepted this cycle."""

        text = transcript.strip()
        if not text:
            _LOGGER.debug("Skipping empty transcript")
            return None

        async with self._lock:
            session_id = self._session.id
            recent = self._store.recent_attributes(session_id, limit=self._config.smoothing_window)
            _LOGGER.info("Analyzing transcription (%d chars) for session %s", len(text), session_id)
            try:
                tentative = await asyncio.wait_for(
                    self._classifier.classify(text, context=recent, preset=self._session.preset),
                    timeout=self._config.classifier_timeout_seconds,
                )
            except asyncio.TimeoutError:
                _LOGGER.warning("Classification timed out; skipping this cycle")
                return None
            except ClassificationUnavailableError as exc:
                _LOGGER.warning("Classification unavailable (%s); skipping this cycle", exc)
                return None

            window = SmoothingWindow(tuple(recent), size=self._config.smoothing_window)
            attributes = window.smooth(tentative)
            selection = select(attributes)
            record = self._store.append_analysis(session_id, attributes, selection, text)
            _LOGGER.info(
                "Analysis stored: mood=%s setting=%s intensity=%.2f event=%s",
                attributes.mood,
                attributes.setting,
                attributes.intensity,
                attributes.narrative_event,
            )
            if self._manager is not None:
                await self._manager.apply_selection(selection)
            return AnalysisOutcome(
                tentative=tentative,
                attributes=attributes,
                selection=selection,
                record=record,
            )

    async def process_audio(self, audio: bytes, *, filename: str) -> AnalysisOutcome | None:
        if self._transcriber is None:
            raise TranscriptionError("no transcriber configured for this session")
        try:
            transcript = await self._transcriber.transcribe(audio, filename=filename)
        except TranscriptionError as exc:
            _LOGGER.warning("Transcription failed (%s); skipping this cycle", exc)
            return None
        return await self.analyze(transcript)

    async def end(self) -> StorySession:
        async with self._lock:
            if self._manager is not None:
                await self._manager.cleanup()
            self._session = self._store.end_session(self._session.id)
            return self._session
