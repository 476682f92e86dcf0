from __future__ import annotations

from .backend import AudioBackend, SoundDeviceBackend, SoundHandle, load_backend
from .catalog import TrackCatalog
from .classifier import AttributeClassifier, LiteLLMClassifier, build_classifier_prompt
from .config import SoundStoryConfig
from .errors import (
    AudioSystemError,
    ClassificationUnavailableError,
    InvalidConfigError,
    SessionNotFoundError,
    SoundStoryError,
    TranscriptionError,
    UnresolvedTrackError,
)
from .layers import AudioLayerManager, LayerSnapshot
from .logging_utils import configure_logging as _configure_logging
from .pipeline import AnalysisOutcome, NarrationSession
from .schema import (
    AttributeTuple,
    IntensityBucket,
    Mood,
    NarrativeEvent,
    Setting,
    SoundscapeSelection,
    StoryPreset,
)
from .selector import intensity_bucket, select
from .smoothing import SmoothingWindow, smooth
from .store import (
    AnalysisRecord,
    HistoryPage,
    InMemorySessionStore,
    JsonlSessionStore,
    SessionStore,
    StorySession,
)
from .transcriber import LiteLLMTranscriber, Transcriber

__all__ = [
    "AnalysisOutcome",
    "AnalysisRecord",
    "AttributeClassifier",
    "AttributeTuple",
    "AudioBackend",
    "AudioLayerManager",
    "AudioSystemError",
    "ClassificationUnavailableError",
    "HistoryPage",
    "InMemorySessionStore",
    "IntensityBucket",
    "InvalidConfigError",
    "JsonlSessionStore",
    "LayerSnapshot",
    "LiteLLMClassifier",
    "LiteLLMTranscriber",
    "Mood",
    "NarrationSession",
    "NarrativeEvent",
    "SessionNotFoundError",
    "SessionStore",
    "Setting",
    "SmoothingWindow",
    "SoundDeviceBackend",
    "SoundHandle",
    "SoundStoryConfig",
    "SoundStoryError",
    "SoundscapeSelection",
    "StoryPreset",
    "StorySession",
    "TrackCatalog",
    "TranscriptionError",
    "Transcriber",
    "UnresolvedTrackError",
    "build_classifier_prompt",
    "intensity_bucket",
    "load_backend",
    "select",
    "smooth",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
