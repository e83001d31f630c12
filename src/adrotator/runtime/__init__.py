"""Ad rotation runtime: per-slot scheduling, fetching, selection and rendering."""

from .config import RotatorConfig
from .scheduler import AdRotator, NullRotator, SlotScheduler, rotate_ads
from .slot import SlotPhase, SlotState

__all__ = [
    "AdRotator",
    "NullRotator",
    "RotatorConfig",
    "SlotPhase",
    "SlotScheduler",
    "SlotState",
    "rotate_ads",
]
