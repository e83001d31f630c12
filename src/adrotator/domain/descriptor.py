"""
Ad descriptor model and AdSource payload normalisation.

An AdSource response is a single ad object, an array of ad objects, or one of
the envelopes ``{"ad": {...}}`` / ``{"ads": [...]}``. Each ad object is mapped
to an immutable :class:`AdDescriptor`:

    videoSrc | video | video_url | videoUrl   -> media_url (video)
    imageSrc | image | image_url | imageUrl   -> media_url (image)
    meta.name                                 -> id (fallback: media url, then generated)
    meta.weight                               -> weight (default 1)
    meta.duration                             -> duration_seconds
    meta.loop                                 -> loop
"""

from __future__ import annotations

import math
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from adrotator.infra.exceptions import MalformedPayloadError

VIDEO_KEYS = ("videoSrc", "video", "video_url", "videoUrl")
IMAGE_KEYS = ("imageSrc", "image", "image_url", "imageUrl")
POSTER_KEYS = ("videoPoster", "poster", "posterUrl")
LINK_KEYS = ("buttonLink", "linkHref", "link", "href")
LOOP_TRUE = frozenset({"true", "1", "yes", "on"})
LOOP_FALSE = frozenset({"false", "0", "no", "off", ""})


class MediaKind(str, Enum):
    """Kind of media an ad carries."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class AdDescriptor:
    """Normalised ad record, immutable once fetched."""

    id: str
    media_kind: MediaKind
    media_url: str
    poster_url: str | None = None
    link_url: str | None = None
    weight: float = 1.0
    duration_seconds: float | None = None
    loop: bool = False
    title: str | None = None
    fallback_image_url: str | None = None

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ValueError("weight must be non-negative")
        if not self.media_url:
            raise ValueError("media_url is required")

    @property
    def is_video(self) -> bool:
        return self.media_kind is MediaKind.VIDEO

    @property
    def has_finite_duration(self) -> bool:
        return self.duration_seconds is not None and math.isfinite(self.duration_seconds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdDescriptor:
        """
        Build a descriptor from one AdSource ad object.

        Raises:
            MalformedPayloadError: if the object has no usable media field or
                carries a non-numeric weight/duration.
        """
        if not isinstance(data, dict):
            raise MalformedPayloadError(f"ad must be an object, got {type(data).__name__}")

        meta = data.get("meta") or {}
        if not isinstance(meta, dict):
            raise MalformedPayloadError("ad meta must be an object")

        video_url = _first_str(data, VIDEO_KEYS)
        image_url = _first_str(data, IMAGE_KEYS)
        if video_url:
            kind, media_url = MediaKind.VIDEO, video_url
        elif image_url:
            kind, media_url = MediaKind.IMAGE, image_url
        else:
            raise MalformedPayloadError("ad has no image or video source")

        name = meta.get("name")
        if isinstance(name, str) and name:
            ad_id = name
        else:
            ad_id = image_url or video_url or _generated_id()

        return cls(
            id=ad_id,
            media_kind=kind,
            media_url=media_url,
            poster_url=_first_str(data, POSTER_KEYS) if kind is MediaKind.VIDEO else None,
            link_url=_first_str(data, LINK_KEYS),
            weight=_parse_weight(meta.get("weight")),
            duration_seconds=_parse_duration(meta.get("duration")),
            loop=_parse_loop(meta.get("loop")),
            title=data.get("title") if isinstance(data.get("title"), str) else None,
            fallback_image_url=image_url if kind is MediaKind.VIDEO else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise back to the AdSource wire shape."""
        source_key = "videoSrc" if self.is_video else "imageSrc"
        data: dict[str, Any] = {
            source_key: self.media_url,
            "meta": {
                "name": self.id,
                "weight": self.weight,
                "loop": self.loop,
            },
        }
        if self.duration_seconds is not None:
            data["meta"]["duration"] = self.duration_seconds
        if self.fallback_image_url:
            data["imageSrc"] = self.fallback_image_url
        if self.poster_url:
            data["videoPoster"] = self.poster_url
        if self.link_url:
            data["buttonLink"] = self.link_url
        if self.title:
            data["title"] = self.title
        return data


def parse_payload(payload: Any) -> list[AdDescriptor]:
    """
    Convert a decoded AdSource response body into descriptors.

    Raises:
        MalformedPayloadError: if the body is empty or any ad is unusable.
    """
    if isinstance(payload, dict):
        if isinstance(payload.get("ads"), list):
            items = payload["ads"]
        elif isinstance(payload.get("ad"), dict):
            items = [payload["ad"]]
        else:
            items = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise MalformedPayloadError("invalid ad payload")

    if not items:
        raise MalformedPayloadError("ad payload contains no ads")
    return [AdDescriptor.from_dict(item) for item in items]


def _first_str(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _parse_weight(raw: Any) -> float:
    if raw is None:
        return 1.0
    if isinstance(raw, bool):
        raise MalformedPayloadError("weight must be a number")
    try:
        weight = float(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"weight must be a number, got {raw!r}") from e
    if not math.isfinite(weight):
        raise MalformedPayloadError(f"weight must be a finite number, got {raw!r}")
    return max(0.0, weight)


def _parse_duration(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        duration = float(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"duration must be a number, got {raw!r}") from e
    if not math.isfinite(duration) or duration <= 0:
        return None
    return duration


def _parse_loop(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in LOOP_TRUE:
            return True
        if text in LOOP_FALSE:
            return False
    raise MalformedPayloadError(f"loop must be a boolean, got {raw!r}")


def _generated_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
