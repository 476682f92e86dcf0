from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from .errors import InvalidConfigError, UnresolvedTrackError

_LOGGER = logging.getLogger("soundstory.catalog")

AUDIO_EXTENSIONS = frozenset({".wav", ".flac", ".ogg", ".mp3", ".m4a"})


class TrackCatalog:
    """Playable tracks keyed by the ids the selector emits."""

    def __init__(self, tracks: Mapping[str, str] | None = None) -> None:
        self._tracks: Mapping[str, str] = MappingProxyType(dict(tracks or {}))

    @classmethod
    def from_mapping(cls, tracks: Mapping[str, str]) -> TrackCatalog:
        return cls(tracks)

    @classmethod
    def from_directory(cls, root: str | Path) -> TrackCatalog:
        base = Path(root).expanduser()
        if not base.is_dir():
            raise InvalidConfigError(f"sounds directory does not exist: {base}")
        tracks: dict[str, str] = {}
        for path in sorted(base.rglob("*")):
            if not path.is_file() or path.suffix.lower() not in AUDIO_EXTENSIONS:
                continue
            if path.stem in tracks:
                _LOGGER.warning("Duplicate track id %s at %s; keeping %s", path.stem, path, tracks[path.stem])
                continue
            tracks[path.stem] = str(path)
        _LOGGER.info("Loaded %d tracks from %s", len(tracks), base)
        return cls(tracks)

    def resolve(self, track_id: str) -> str:
        try:
            return self._tracks[track_id]
        except KeyError:
            raise UnresolvedTrackError(track_id) from None

    def missing(self, track_ids: Iterable[str]) -> list[str]:
        return sorted(track_id for track_id in set(track_ids) if track_id not in self._tracks)

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks

    def __iter__(self) -> Iterator[str]:
        return iter(self._tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __repr__(self) -> str:
        return f"TrackCatalog({len(self._tracks)} tracks)"
