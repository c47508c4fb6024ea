"""Rule activation - validating a pick target and writing the rule state.

Shared by direct picks and queue processing. No I/O, no permission or
rate-limit checks; callers decide whether activation is allowed.
"""

from datetime import datetime, timedelta

from challenge_picker.core.timers import find_active_state, start_cooldown
from challenge_picker.errors import NotFound, ValidationError
from challenge_picker.models.playthrough import STATUS_SETUP, Playthrough
from challenge_picker.models.rule_state import PlaythroughRuleState
from challenge_picker.schemas.catalog import DifficultyLevel, Rule
from challenge_picker.schemas.configuration import RulesetConfiguration


def resolve_rule(
    catalog, configuration: RulesetConfiguration, rule_id: int, difficulty_level: int
) -> tuple[Rule, DifficultyLevel]:
    """Look up a pickable rule and level, or raise NotFound / ValidationError."""
    configured = configuration.get(rule_id)
    if configured is None or not configured.is_enabled:
        raise NotFound(f"Rule {rule_id} is not part of this session", code="RULE_NOT_FOUND")
    if configured.is_default:
        raise ValidationError(f"Rule {rule_id} is a default rule and cannot be picked", code="DEFAULT_RULE")

    rule = catalog.get_rule(rule_id)
    if rule is None:
        raise NotFound(f"Rule {rule_id} no longer exists", code="RULE_NOT_FOUND")

    level = rule.get_level(difficulty_level)
    if level is None:
        raise NotFound(
            f"Difficulty level {difficulty_level} does not exist for rule '{rule.name}'",
            code="DIFFICULTY_LEVEL_NOT_FOUND",
        )
    return rule, level


def activate_rule(
    playthrough: Playthrough, rule: Rule, level: DifficultyLevel, now: datetime
) -> PlaythroughRuleState:
    """Activate ``rule`` at ``level`` and start its cooldown.

    An already-active state for the same rule is restarted in place, otherwise
    a new state row is added so earlier activations stay in the history.
    """
    state = find_active_state(playthrough, rule.id)
    if state is None:
        state = PlaythroughRuleState(rule_id=rule.id, is_default=False, created_at=now)
        playthrough.rule_states.append(state)

    state.activate(now)
    state.difficulty_level = level.level
    state.duration_seconds = level.duration_seconds
    state.expires_at = now + timedelta(seconds=level.duration_seconds) if level.duration_seconds else None
    state.current_amount = level.amount
    state.initial_amount = level.amount

    start_cooldown(playthrough, rule.id, now)
    return state


def permanent_state(playthrough: Playthrough, rule_id: int, is_default: bool, now: datetime) -> PlaythroughRuleState:
    """Add an active state with neither timer nor counter (manual toggle, defaults)."""
    state = PlaythroughRuleState(
        rule_id=rule_id,
        is_default=is_default,
        is_active=True,
        started_at=None if playthrough.status == STATUS_SETUP else now,
        created_at=now,
    )
    playthrough.rule_states.append(state)
    return state
