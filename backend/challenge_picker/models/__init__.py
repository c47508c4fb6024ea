"""Database models package."""

from challenge_picker.models.playthrough import Playthrough
from challenge_picker.models.queue_entry import QueueEntry
from challenge_picker.models.rule_state import PlaythroughRuleState

__all__ = ["Playthrough", "PlaythroughRuleState", "QueueEntry"]
