from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any, Protocol

from .errors import TranscriptionError

_LOGGER = logging.getLogger("soundstory.transcriber")

SUPPORTED_FORMATS: tuple[str, ...] = ("m4a", "wav", "mp3", "webm")
MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, *, filename: str) -> str: ...


def audio_extension(filename: str) -> str:
    return PurePath(filename).suffix.lstrip(".").lower()


def validate_audio_upload(audio: bytes, filename: str) -> None:
    extension = audio_extension(filename)
    if extension not in SUPPORTED_FORMATS:
        raise TranscriptionError(
            f"Unsupported audio format. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )
    if not audio:
        raise TranscriptionError("No audio provided")
    if len(audio) > MAX_UPLOAD_BYTES:
        raise TranscriptionError("Audio file too large (max 25MB)")


class LiteLLMTranscriber:
    """Speech-to-text through ``litellm.atranscription``."""

    def __init__(self, model: str = "whisper-1", *, api_key: str | None = None) -> None:
        self._model = model
        self._api_key = api_key

    async def transcribe(self, audio: bytes, *, filename: str) -> str:
        validate_audio_upload(audio, filename)
        try:
            import litellm  # type: ignore[import]
        except ImportError as exc:
            raise TranscriptionError("litellm is not installed") from exc

        kwargs: dict[str, Any] = {"model": self._model, "file": (filename, audio)}
        if self._api_key:
            kwargs["api_key"] = self._api_key
        _LOGGER.debug("Sending %d bytes of %s to %s", len(audio), filename, self._model)
        try:
            response: Any = await litellm.atranscription(**kwargs)
        except Exception as exc:  # pragma: no cover - provider errors
            _LOGGER.warning("Transcription request failed: %s", exc, exc_info=True)
            raise TranscriptionError(f"Transcription failed: {exc}") from exc

        text = getattr(response, "text", None)
        if text is None and isinstance(response, dict):
            text = response.get("text")
        transcript = (text or "").strip()
        if not transcript:
            _LOGGER.warning("Transcription of %s returned no text", filename)
            raise TranscriptionError("No speech detected in audio file")
        _LOGGER.info("Transcribed %s (%d chars)", filename, len(transcript))
        return transcript
