"""Playthrough service - creating, loading and configuring sessions."""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_picker.config import settings
from challenge_picker.core.activation import permanent_state
from challenge_picker.core.lifecycle import ensure_default_states
from challenge_picker.core.timers import active_non_default_count, active_states
from challenge_picker.errors import (
    AuthRequired,
    ConcurrencyLimitReached,
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from challenge_picker.models.playthrough import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_SETUP,
    UNFINISHED_STATUSES,
    Playthrough,
)
from challenge_picker.models.rule_state import PlaythroughRuleState
from challenge_picker.schemas.configuration import ConfiguredRule, RulesetConfiguration
from challenge_picker.schemas.playthrough import (
    ConfiguredRuleView,
    CreatePlaythroughRequest,
    PlaythroughDetail,
    PlaythroughSummary,
)
from challenge_picker.services.catalog_service import catalog_service

log = structlog.get_logger(__name__)


class PlaythroughService:
    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @staticmethod
    async def get(db: AsyncSession, playthrough_id: str) -> Playthrough:
        result = await db.execute(
            select(Playthrough)
            .where(Playthrough.id == playthrough_id)
            .execution_options(populate_existing=True)
        )
        playthrough = result.scalar_one_or_none()
        if playthrough is None:
            raise NotFound("Playthrough not found", code="PLAYTHROUGH_NOT_FOUND")
        return playthrough

    @staticmethod
    async def find_unfinished(db: AsyncSession, owner_id: str) -> Playthrough | None:
        """The user's current session in setup, active or paused status, if any."""
        result = await db.execute(
            select(Playthrough)
            .where(Playthrough.owner_id == owner_id, Playthrough.status.in_(UNFINISHED_STATUSES))
            .order_by(Playthrough.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_unfinished(self, db: AsyncSession, owner_id: str) -> Playthrough:
        playthrough = await self.find_unfinished(db, owner_id)
        if playthrough is None:
            raise NotFound("You have no current playthrough", code="NO_ACTIVE_PLAYTHROUGH")
        return playthrough

    async def get_running(self, db: AsyncSession, owner_id: str) -> Playthrough:
        """The user's playthrough in ``active`` status (counters, stream deck)."""
        playthrough = await self.find_unfinished(db, owner_id)
        if playthrough is None or playthrough.status != STATUS_ACTIVE:
            raise NotFound("You have no active playthrough", code="NO_ACTIVE_PLAYTHROUGH")
        return playthrough

    @staticmethod
    def check_can_view(playthrough: Playthrough, caller_id: str | None) -> None:
        if playthrough.require_auth and caller_id is None:
            raise AuthRequired()

    @staticmethod
    def require_owner(playthrough: Playthrough, caller_id: str | None, action: str = "manage") -> None:
        if not playthrough.is_owner(caller_id):
            raise Forbidden(f"Only the host can {action} this playthrough")

    @staticmethod
    def configuration(playthrough: Playthrough) -> RulesetConfiguration:
        return RulesetConfiguration.from_snapshot(playthrough.configuration)

    # ------------------------------------------------------------------
    # Creation and settings
    # ------------------------------------------------------------------

    async def create(
        self, db: AsyncSession, owner_id: str, req: CreatePlaythroughRequest, now: datetime
    ) -> Playthrough:
        game = catalog_service.get_game(req.game_id)
        if game is None:
            raise NotFound("Game not found", code="GAME_NOT_FOUND")
        ruleset = catalog_service.get_ruleset(req.ruleset_id)
        if ruleset is None:
            raise NotFound("Ruleset not found", code="RULESET_NOT_FOUND")
        if not ruleset.is_available_for(game.id):
            raise ValidationError(
                f"Ruleset '{ruleset.name}' is not available for {game.name}", code="RULESET_NOT_AVAILABLE"
            )

        if await self.find_unfinished(db, owner_id) is not None:
            raise Conflict(
                "You already have a playthrough in progress; end it before starting another",
                code="ACTIVE_PLAYTHROUGH_EXISTS",
            )

        overrides = {o.rule_id: o.is_enabled for o in req.rule_overrides}
        unknown = sorted(set(overrides) - {card.rule_id for card in ruleset.cards})
        if unknown:
            raise ValidationError(f"Rules {unknown} are not part of ruleset '{ruleset.name}'")

        configuration = RulesetConfiguration(
            created_at=now,
            ruleset_id=ruleset.id,
            ruleset_name=ruleset.name,
            max_concurrent_rules=req.max_concurrent_rules,
            rules=[
                ConfiguredRule(
                    rule_id=card.rule_id,
                    is_default=card.is_default,
                    is_enabled=overrides.get(card.rule_id, True),
                    tarot_card_identifier=card.tarot_card_identifier,
                    position=card.position,
                )
                for card in ruleset.cards
            ],
        )

        cooldown = req.rule_cooldown_seconds
        playthrough = Playthrough(
            owner_id=owner_id,
            game_id=game.id,
            ruleset_id=ruleset.id,
            status=STATUS_SETUP,
            max_concurrent_rules=req.max_concurrent_rules,
            rule_cooldown_seconds=settings.DEFAULT_RULE_COOLDOWN_SECONDS if cooldown is None else cooldown,
            configuration=configuration.to_snapshot(),
            cooldowns={},
            allow_viewer_picks=req.allow_viewer_picks,
            require_auth=req.require_auth,
            total_paused_duration_seconds=0,
            created_at=now,
            updated_at=now,
            rule_states=[],
            queue_entries=[],
        )
        ensure_default_states(playthrough, configuration, now)
        db.add(playthrough)
        await db.flush()

        log.info(
            "playthrough_created",
            playthrough_id=playthrough.id,
            owner_id=owner_id,
            game_id=game.id,
            ruleset_id=ruleset.id,
            max_concurrent_rules=playthrough.max_concurrent_rules,
        )
        return playthrough

    def update_max_concurrent(self, playthrough: Playthrough, caller_id: str, value: int) -> None:
        self.require_owner(playthrough, caller_id, "configure")
        if playthrough.status != STATUS_SETUP:
            raise InvalidTransition("Max concurrent rules can only be changed during setup")
        playthrough.max_concurrent_rules = value

    def set_privacy(self, playthrough: Playthrough, caller_id: str, require_auth: bool) -> None:
        self.require_owner(playthrough, caller_id, "change privacy of")
        playthrough.require_auth = require_auth
        log.info("playthrough_privacy_changed", playthrough_id=playthrough.id, require_auth=require_auth)

    def toggle_rule(
        self, playthrough: Playthrough, caller_id: str, rule_id: int, now: datetime
    ) -> PlaythroughRuleState | None:
        """Switch a configured rule on (permanent) or off. Returns the new state when switched on."""
        self.require_owner(playthrough, caller_id, "toggle rules in")
        if playthrough.status == STATUS_COMPLETED:
            raise InvalidTransition("Rules cannot be toggled after the playthrough has ended")

        configured = self.configuration(playthrough).get(rule_id)
        if configured is None:
            raise NotFound(f"Rule {rule_id} is not part of this session", code="RULE_NOT_FOUND")

        active = [s for s in active_states(playthrough) if s.rule_id == rule_id]
        if active:
            for state in active:
                state.complete(now)
            log.info("rule_toggled", playthrough_id=playthrough.id, rule_id=rule_id, is_active=False)
            return None

        if not configured.is_default and active_non_default_count(playthrough) >= playthrough.max_concurrent_rules:
            raise ConcurrencyLimitReached(
                f"Maximum concurrent rules reached ({playthrough.max_concurrent_rules})"
            )
        state = permanent_state(playthrough, rule_id, is_default=configured.is_default, now=now)
        log.info("rule_toggled", playthrough_id=playthrough.id, rule_id=rule_id, is_active=True)
        return state

    # ------------------------------------------------------------------
    # Post-run feedback
    # ------------------------------------------------------------------

    def _require_completed(self, playthrough: Playthrough, caller_id: str) -> None:
        self.require_owner(playthrough, caller_id, "give feedback on")
        if playthrough.status != STATUS_COMPLETED:
            raise InvalidTransition(
                "Feedback can only be given once the playthrough has ended",
                code="INVALID_STATUS",
                status=playthrough.status,
            )

    def set_feedback(
        self, playthrough: Playthrough, caller_id: str, finished_run: bool | None, recommended: int | None
    ) -> None:
        self._require_completed(playthrough, caller_id)
        if finished_run is not None:
            playthrough.finished_run = finished_run
        if recommended is not None:
            playthrough.recommended = recommended
        log.info(
            "playthrough_feedback_saved",
            playthrough_id=playthrough.id,
            finished_run=playthrough.finished_run,
            recommended=playthrough.recommended,
        )

    def set_rule_feedback(self, playthrough: Playthrough, caller_id: str, rule_id: int, could_be_harder: bool) -> None:
        """Record whether a rule could have been harder, inside the configuration snapshot."""
        self._require_completed(playthrough, caller_id)
        configuration = self.configuration(playthrough)
        if configuration.get(rule_id) is None:
            raise NotFound(f"Rule {rule_id} is not part of this session", code="RULE_NOT_FOUND")

        playthrough.configuration = configuration.with_rule_feedback(rule_id, could_be_harder).to_snapshot()
        log.info(
            "rule_feedback_saved", playthrough_id=playthrough.id, rule_id=rule_id, could_be_harder=could_be_harder
        )

    @staticmethod
    async def list_completed(db: AsyncSession, owner_id: str) -> list[Playthrough]:
        """The user's finished runs, most recent first."""
        result = await db.execute(
            select(Playthrough)
            .where(Playthrough.owner_id == owner_id, Playthrough.status == STATUS_COMPLETED)
            .order_by(Playthrough.ended_at.desc(), Playthrough.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @staticmethod
    def summarize(playthrough: Playthrough) -> PlaythroughSummary:
        game = catalog_service.get_game(playthrough.game_id)
        ruleset = catalog_service.get_ruleset(playthrough.ruleset_id)
        return PlaythroughSummary(
            id=playthrough.id,
            owner_id=playthrough.owner_id,
            game_id=playthrough.game_id,
            game_name=game.name if game else None,
            ruleset_id=playthrough.ruleset_id,
            ruleset_name=ruleset.name if ruleset else None,
            status=playthrough.status,
            max_concurrent_rules=playthrough.max_concurrent_rules,
            rule_cooldown_seconds=playthrough.rule_cooldown_seconds,
            allow_viewer_picks=playthrough.allow_viewer_picks,
            require_auth=playthrough.require_auth,
            started_at=playthrough.started_at,
            paused_at=playthrough.paused_at,
            ended_at=playthrough.ended_at,
            total_paused_duration_seconds=playthrough.total_paused_duration_seconds or 0,
            total_duration_seconds=playthrough.total_duration_seconds,
            finished_run=playthrough.finished_run,
            recommended=playthrough.recommended,
            created_at=playthrough.created_at,
            version=playthrough.version,
        )

    def detail(self, playthrough: Playthrough) -> PlaythroughDetail:
        rules = [
            ConfiguredRuleView(
                rule_id=rule.rule_id,
                rule_name=catalog_service.rule_name(rule.rule_id),
                is_default=rule.is_default,
                is_enabled=rule.is_enabled,
                position=rule.position,
                tarot_card_identifier=rule.tarot_card_identifier,
                could_be_harder=rule.could_be_harder,
            )
            for rule in self.configuration(playthrough).rules
        ]
        return PlaythroughDetail(**self.summarize(playthrough).model_dump(), rules=rules)


playthrough_service = PlaythroughService()
