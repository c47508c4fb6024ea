"""Playthrough request/response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from challenge_picker.config import settings
from challenge_picker.schemas.common import CamelModel


class RuleOverride(CamelModel):
    """Host choice made while creating a session, e.g. switching a card off."""
    rule_id: int
    is_enabled: bool = True


class CreatePlaythroughRequest(CamelModel):
    game_id: int
    ruleset_id: int
    max_concurrent_rules: int = Field(
        default=settings.DEFAULT_MAX_CONCURRENT_RULES, ge=1, le=settings.MAX_CONCURRENT_RULES_LIMIT
    )
    rule_cooldown_seconds: int | None = Field(default=None, ge=0, le=86400)  # None = server default
    allow_viewer_picks: bool = True
    require_auth: bool = False
    rule_overrides: list[RuleOverride] = []


class UpdateMaxConcurrentRequest(CamelModel):
    max_concurrent_rules: int = Field(ge=1, le=settings.MAX_CONCURRENT_RULES_LIMIT)


class PrivacyRequest(CamelModel):
    require_auth: bool


class PlaythroughFeedbackRequest(CamelModel):
    """Fields left out (null) are not changed."""
    finished_run: bool | None = None
    recommended: Literal[-1, 0, 1] | None = None


class RuleFeedbackRequest(CamelModel):
    rule_id: int = Field(gt=0)
    could_be_harder: bool


class ConfiguredRuleView(CamelModel):
    rule_id: int
    rule_name: str
    is_default: bool
    is_enabled: bool
    position: int | None = None
    tarot_card_identifier: str | None = None
    could_be_harder: bool | None = None


class PlaythroughSummary(CamelModel):
    id: str
    owner_id: str
    game_id: int
    game_name: str | None = None
    ruleset_id: int
    ruleset_name: str | None = None
    status: str
    max_concurrent_rules: int
    rule_cooldown_seconds: int
    allow_viewer_picks: bool
    require_auth: bool
    started_at: datetime | None = None
    paused_at: datetime | None = None
    ended_at: datetime | None = None
    total_paused_duration_seconds: int = 0
    total_duration_seconds: int | None = None
    finished_run: bool | None = None
    recommended: int | None = None
    created_at: datetime
    version: int


class PlaythroughDetail(PlaythroughSummary):
    rules: list[ConfiguredRuleView] = []


class CompletedPlaythroughsResponse(CamelModel):
    playthroughs: list[PlaythroughSummary]


class PickRuleRequest(CamelModel):
    rule_id: int
    difficulty_level: int = Field(ge=1)


class PickRuleResponse(CamelModel):
    """Either the activated state or a queue acknowledgement."""
    status: Literal["activated", "queued"]
    rule_id: int
    rule_name: str
    difficulty_level: int
    id: int | None = None  # rule state id when activated
    queue_entry_id: int | None = None
    position: int | None = None
    eta_seconds: int | None = None
    message: str


class ToggleRuleResponse(CamelModel):
    rule_id: int
    rule_name: str
    is_active: bool


class CounterChangeResponse(CamelModel):
    rule_id: int
    rule_name: str
    previous_amount: int
    current_amount: int
    completed: bool
    reactivated: bool = False
