"""Stream deck displays - short plain-text tiles for hardware buttons."""

import math
from datetime import datetime

from challenge_picker.core.timers import active_states, time_remaining
from challenge_picker.models.playthrough import STATUS_PAUSED, Playthrough
from challenge_picker.models.rule_state import TYPE_COUNTER, TYPE_HYBRID, TYPE_PERMANENT, TYPE_TIME
from challenge_picker.services.catalog_service import catalog_service

NO_RUN = "No active run"


def format_duration(seconds: int) -> str:
    """MM:SS, or HH:MM:SS from one hour up."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class StreamDeckService:
    @staticmethod
    def timer_text(playthrough: Playthrough | None, index: int, now: datetime) -> str:
        if playthrough is None:
            return "No active timers"
        timers = [s for s in active_states(playthrough) if s.expires_at is not None]
        if not timers:
            return "No active timers"
        if index < 1 or index > len(timers):
            return "Timer not found"

        state = timers[index - 1]
        remaining = math.ceil(time_remaining(state, playthrough, now))
        if remaining <= 0:
            return "⏱️ EXPIRED"
        return f"⏱️ {catalog_service.rule_name(state.rule_id)}\n{format_duration(remaining)}"

    @staticmethod
    def counter_text(playthrough: Playthrough | None, index: int) -> str:
        if playthrough is None:
            return "No active counters"
        counters = [s for s in active_states(playthrough) if s.current_amount is not None]
        if not counters:
            return "No active counters"
        if index < 1 or index > len(counters):
            return "Counter not found"

        state = counters[index - 1]
        if state.current_amount <= 0:
            return "✅ COMPLETE"
        return f"🔢 {catalog_service.rule_name(state.rule_id)}\n{state.current_amount} remaining"

    @staticmethod
    def status_text(playthrough: Playthrough | None) -> str:
        if playthrough is None:
            return NO_RUN
        game = catalog_service.get_game(playthrough.game_id)
        ruleset = catalog_service.get_ruleset(playthrough.ruleset_id)
        status = "⏸️ Paused" if playthrough.status == STATUS_PAUSED else "✅ Active"
        return (
            f"🎮 {game.name if game else 'Unknown'}\n"
            f"📋 {ruleset.name if ruleset else 'Custom'}\n"
            f"{status}"
        )

    @staticmethod
    def rules_text(playthrough: Playthrough | None) -> str:
        if playthrough is None:
            return NO_RUN
        states = active_states(playthrough)
        by_type = {TYPE_PERMANENT: 0, TYPE_TIME: 0, TYPE_COUNTER: 0, TYPE_HYBRID: 0}
        for state in states:
            by_type[state.behavior_type] += 1
        # Hybrids show up under both timers and counters
        return (
            f"📋 Active Rules: {len(states)}\n"
            f"🔮 Permanent: {by_type[TYPE_PERMANENT]}\n"
            f"⏱️ Timers: {by_type[TYPE_TIME] + by_type[TYPE_HYBRID]}\n"
            f"🔢 Counters: {by_type[TYPE_COUNTER] + by_type[TYPE_HYBRID]}"
        )


stream_deck_service = StreamDeckService()
