"""Catalog endpoints - read-only games, rulesets and rules."""

from fastapi import APIRouter

from challenge_picker.errors import NotFound
from challenge_picker.schemas.catalog import Game, Rule, Ruleset
from challenge_picker.services.catalog_service import catalog_service

router = APIRouter()


@router.get("/games", response_model=list[Game])
async def list_games():
    return catalog_service.list_games()


@router.get("/games/{game_id}/rulesets", response_model=list[Ruleset])
async def list_rulesets_for_game(game_id: int):
    """Rulesets that can be played with this game."""
    if catalog_service.get_game(game_id) is None:
        raise NotFound("Game not found", code="GAME_NOT_FOUND")
    return catalog_service.list_rulesets(game_id)


@router.get("/rules/{rule_id}", response_model=Rule)
async def get_rule(rule_id: int):
    rule = catalog_service.get_rule(rule_id)
    if rule is None:
        raise NotFound("Rule not found", code="RULE_NOT_FOUND")
    return rule
