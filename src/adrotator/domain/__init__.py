"""Domain types shared by the rotation runtime and the AdSource service."""

from .descriptor import AdDescriptor, MediaKind, parse_payload

__all__ = ["AdDescriptor", "MediaKind", "parse_payload"]
