from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from .schema import AttributeTuple

_LOGGER = logging.getLogger("soundstory.smoothing")

DEFAULT_WINDOW_SIZE = 5

H = TypeVar("H", bound=Hashable)


@dataclass(frozen=True, slots=True)
class SmoothingWindow:
    """Accepted (post-smoothing) tuples for one session, oldest first.

    The full history is kept; only the newest ``size`` entries feed the next
    smoothing pass. ``append`` returns a new window.

    Example:
        window = SmoothingWindow()
        accepted = window.smooth(tentative)
        window = window.append(accepted)
    """

    history: tuple[AttributeTuple, ...] = ()
    size: int = DEFAULT_WINDOW_SIZE

    def recent(self) -> tuple[AttributeTuple, ...]:
        if self.size <= 0:
            return ()
        return self.history[-self.size :]

    def append(self, accepted: AttributeTuple) -> SmoothingWindow:
        return SmoothingWindow(history=(*self.history, accepted), size=self.size)

    def smooth(self, current: AttributeTuple) -> AttributeTuple:
        return smooth(current, self.recent())

    def __len__(self) -> int:
        return len(self.history)


def _majority(values: Sequence[H]) -> H:
    counts = Counter(values)
    best = max(counts.values())
    # Ties go to the value seen most recently.
    for value in reversed(values):
        if counts[value] == best:
            return value
    raise ValueError("majority of an empty sequence")


def _round_half_up(value: float, digits: int = 2) -> float:
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def weighted_intensity(current: float, recent: Sequence[float]) -> float:
    """Recency-weighted mean: sample ``i`` of ``k`` weighs ``i / k + 1``, current weighs 1."""

    k = len(recent)
    if k == 0:
        return current
    weights = [i / k + 1 for i in range(k)]
    total_weight = sum(weights) + 1
    weighted_sum = sum(w * value for w, value in zip(weights, recent)) + current
    return _round_half_up(weighted_sum / total_weight)


def smooth(current: AttributeTuple, recent: Sequence[AttributeTuple]) -> AttributeTuple:
    """Stabilize a tentative tuple against recently accepted ones.

    Categorical fields take the mode of ``recent + [current]`` (most recent wins
    ties); intensity takes the recency-weighted mean rounded to two decimals.
    An empty history returns ``current`` unchanged.
    """

    if not recent:
        return current

    combined = [*recent, current]
    smoothed = AttributeTuple(
        mood=_majority([item.mood for item in combined]),
        setting=_majority([item.setting for item in combined]),
        intensity=weighted_intensity(current.intensity, [item.intensity for item in recent]),
        narrative_event=_majority([item.narrative_event for item in combined]),
    )
    if smoothed != current:
        _LOGGER.debug("Smoothed %s -> %s", current.describe(), smoothed.describe())
    return smoothed
