"""Catalog service - loads games, rules and rulesets from YAML.

The catalog is read-only at runtime. Files are parsed once and cached.
"""

from pathlib import Path

import structlog
import yaml

from challenge_picker.config import settings
from challenge_picker.schemas.catalog import Game, Rule, Ruleset

log = structlog.get_logger(__name__)


class CatalogService:
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._games: dict[int, Game] | None = None
        self._rules: dict[int, Rule] | None = None
        self._rulesets: dict[int, Ruleset] | None = None

    def _read_yaml(self, file_path: Path) -> dict:
        if not file_path.exists():
            raise FileNotFoundError(f"Catalog file not found: {file_path}")
        with open(file_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _load(self) -> None:
        raw_games = self._read_yaml(self.data_dir / "games.yaml").get("games", [])
        raw_rules = self._read_yaml(self.data_dir / "rules.yaml").get("rules", [])

        games = {g.id: g for g in (Game(**item) for item in raw_games)}
        rules = {r.id: r for r in (Rule(**item) for item in raw_rules)}

        rulesets = {}
        for file_path in sorted((self.data_dir / "rulesets").glob("*.yaml")):
            ruleset = Ruleset(**self._read_yaml(file_path))
            unknown = [card.rule_id for card in ruleset.cards if card.rule_id not in rules]
            if unknown:
                raise ValueError(f"Ruleset {ruleset.id} references unknown rules: {unknown}")
            rulesets[ruleset.id] = ruleset

        self._games, self._rules, self._rulesets = games, rules, rulesets
        log.info("catalog_loaded", games=len(games), rules=len(rules), rulesets=len(rulesets))

    def _ensure_loaded(self) -> None:
        if self._rules is None:
            self._load()

    def get_game(self, game_id: int) -> Game | None:
        self._ensure_loaded()
        return self._games.get(game_id)

    def get_rule(self, rule_id: int) -> Rule | None:
        self._ensure_loaded()
        return self._rules.get(rule_id)

    def get_ruleset(self, ruleset_id: int) -> Ruleset | None:
        self._ensure_loaded()
        return self._rulesets.get(ruleset_id)

    def list_games(self) -> list[Game]:
        self._ensure_loaded()
        return sorted(self._games.values(), key=lambda g: g.id)

    def list_rulesets(self, game_id: int | None = None) -> list[Ruleset]:
        """List rulesets, optionally only those playable with ``game_id``."""
        self._ensure_loaded()
        rulesets = sorted(self._rulesets.values(), key=lambda r: r.id)
        if game_id is None:
            return rulesets
        return [r for r in rulesets if r.is_available_for(game_id)]

    def rule_name(self, rule_id: int) -> str:
        rule = self.get_rule(rule_id)
        return rule.name if rule else f"Rule #{rule_id}"


catalog_service = CatalogService(settings.CATALOG_DIR)
