"""Weighted random ad selection with a recency penalty."""

from __future__ import annotations

import random
from collections.abc import Collection, Sequence
from typing import Callable

from adrotator.domain.descriptor import AdDescriptor

RandomFn = Callable[[], float]

DEFAULT_RECENT_PENALTY = 0.2


class AdSelector:
    """
    Pick one ad from a candidate list.

    Each candidate's effective weight is its declared weight, multiplied by
    ``recent_penalty`` when its id appears in the recent-history list. A
    uniform ``r`` in ``[0, total)`` is walked down the candidates; the first
    candidate that drives the remainder to zero or below wins. When every
    effective weight is zero the pick is uniform.

    ``random_fn`` must return floats in ``[0, 1)``; inject a seeded
    ``random.Random(seed).random`` for deterministic results.
    """

    def __init__(
        self,
        random_fn: RandomFn | None = None,
        *,
        recent_penalty: float = DEFAULT_RECENT_PENALTY,
    ) -> None:
        if not 0.0 <= recent_penalty <= 1.0:
            raise ValueError("recent_penalty must be within [0, 1]")
        self._random = random_fn or random.random
        self._recent_penalty = recent_penalty

    @property
    def recent_penalty(self) -> float:
        return self._recent_penalty

    def effective_weight(self, ad: AdDescriptor, recent: Collection[str]) -> float:
        penalty = self._recent_penalty if ad.id in recent else 1.0
        return max(0.0, ad.weight) * penalty

    def pick(self, candidates: Sequence[AdDescriptor], recent: Collection[str] = ()) -> AdDescriptor:
        if not candidates:
            raise ValueError("candidates must not be empty")
        if len(candidates) == 1:
            return candidates[0]

        recent_ids = set(recent)
        weights = [self.effective_weight(ad, recent_ids) for ad in candidates]
        total = sum(weights)
        if total <= 0:
            index = min(int(self._random() * len(candidates)), len(candidates) - 1)
            return candidates[index]

        remainder = self._random() * total
        for ad, weight in zip(candidates, weights):
            if weight <= 0:
                continue
            remainder -= weight
            if remainder <= 0:
                return ad

        # Float rounding left a sliver: fall back to the last weighted candidate.
        for ad, weight in zip(reversed(candidates), reversed(weights)):
            if weight > 0:
                return ad
        return candidates[-1]
