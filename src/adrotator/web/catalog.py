"""
Ad catalog served by the AdSource API.

The catalog is a list of ad objects in the AdSource wire shape (``imageSrc``,
``videoSrc``, ``buttonLink``, ``meta.name``, ``meta.weight`` ...). Picks are
weighted by ``meta.weight`` with a floor of 1 per ad, with replacement.
"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any

from adrotator.domain.descriptor import AdDescriptor
from adrotator.infra.exceptions import MalformedPayloadError

DEFAULT_ADS: list[dict[str, Any]] = [
    {
        "id": 1,
        "title": "New Movie Promo",
        "imageSrc": "/ads/movie.jpg",
        "videoSrc": "/ads/trailer.mp4",
        "buttonLink": "https://example.com",
        "meta": {"name": "MoviePromo2025", "duration": 15, "loop": False, "weight": 2},
    },
    {
        "id": 2,
        "title": "Snack Ad",
        "imageSrc": "/ads/snack.jpg",
        "buttonLink": "https://snacks.com",
        "meta": {"name": "SnackBoost", "duration": 8, "loop": True, "weight": 1},
    },
]


class AdCatalog:
    """In-memory ad inventory."""

    def __init__(
        self,
        ads: list[dict[str, Any]] | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._ads = [dict(ad) for ad in (DEFAULT_ADS if ads is None else ads)]
        for ad in self._ads:
            # Reject entries the rotation runtime could not display.
            AdDescriptor.from_dict(ad)
        self._rng = rng or random.Random()

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> AdCatalog:
        """
        Load a catalog from a JSON file holding a list of ads (or ``{"ads": [...]}``).

        Raises:
            MalformedPayloadError: if the file is not a list of valid ads.
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("ads")
        if not isinstance(data, list):
            raise MalformedPayloadError(f"Catalog {path} must contain a list of ads")
        return cls(data, **kwargs)

    @property
    def ads(self) -> list[dict[str, Any]]:
        return [dict(ad) for ad in self._ads]

    def __len__(self) -> int:
        return len(self._ads)

    def get_random_ads(self, count: int = 1) -> list[dict[str, Any]]:
        """Return ``count`` weighted random picks (fewer only if the catalog is empty)."""
        if not self._ads or count <= 0:
            return []
        weights = [_pool_weight(ad) for ad in self._ads]
        picks = self._rng.choices(self._ads, weights=weights, k=count)
        return [dict(ad) for ad in picks]


def _pool_weight(ad: dict[str, Any]) -> float:
    weight = (ad.get("meta") or {}).get("weight") or 1
    try:
        return max(1.0, float(weight))
    except (TypeError, ValueError):
        return 1.0
