from __future__ import annotations


class SoundStoryError(Exception):
    """Base error for the SoundStory library."""


class InvalidConfigError(SoundStoryError):
    """Raised when a config cannot be parsed or validated."""


class ClassificationUnavailableError(SoundStoryError):
    """Raised when the narration classifier fails or times out."""


class TranscriptionError(SoundStoryError):
    """Raised when an audio chunk cannot be turned into text."""


class UnresolvedTrackError(SoundStoryError):
    """Raised when a track id is absent from the playable catalog."""

    def __init__(self, track_id: str) -> None:
        super().__init__(f"track not found in catalog: {track_id!r}")
        self.track_id = track_id


class AudioSystemError(SoundStoryError):
    """Raised when the platform audio output cannot be set up or used."""


class SessionNotFoundError(SoundStoryError):
    """Raised when a storytelling session id is unknown to the store."""
