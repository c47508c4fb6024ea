"""Rule catalog schemas - games, rules with difficulty levels, rulesets.

The catalog is read-only reference data loaded from YAML; the rule engine
only ever looks things up in it.
"""

from typing import Literal

from pydantic import Field

from challenge_picker.schemas.common import CamelModel


class DifficultyLevel(CamelModel):
    """One variant of a rule. Duration and amount are both optional."""
    level: int = Field(ge=1)
    duration_seconds: int | None = Field(default=None, gt=0)
    amount: int | None = Field(default=None, gt=0)
    description: str | None = None


class Rule(CamelModel):
    id: int
    name: str
    description: str = ""
    rule_type: Literal["basic", "court", "legendary"] = "basic"
    difficulty_levels: list[DifficultyLevel] = []

    def get_level(self, level: int) -> DifficultyLevel | None:
        for dl in self.difficulty_levels:
            if dl.level == level:
                return dl
        return None


class Game(CamelModel):
    id: int
    name: str
    description: str = ""


class RulesetCard(CamelModel):
    """A rule placed in a ruleset."""
    rule_id: int
    is_default: bool = False  # default rules stay active for the whole session
    position: int | None = None
    tarot_card_identifier: str | None = None


class Ruleset(CamelModel):
    id: int
    name: str
    description: str = ""
    game_ids: list[int] = []  # games this ruleset can be played with
    cards: list[RulesetCard] = []

    def is_available_for(self, game_id: int) -> bool:
        return game_id in self.game_ids
