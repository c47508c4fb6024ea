"""Typed view over the playthrough configuration snapshot.

The snapshot is stored as JSON on the playthrough. Reading it goes through
``RulesetConfiguration.from_snapshot`` which never fails: entries without a
usable ``ruleId`` are dropped, malformed flags fall back to non-default and
disabled, and a missing ``isEnabled`` means enabled.
"""

from datetime import datetime

from pydantic import BaseModel

SNAPSHOT_VERSION = "1.0"


class ConfiguredRule(BaseModel):
    rule_id: int
    is_default: bool = False
    is_enabled: bool = True
    tarot_card_identifier: str | None = None
    position: int | None = None
    could_be_harder: bool | None = None  # host feedback after the run

    @property
    def is_pickable(self) -> bool:
        return self.is_enabled and not self.is_default

    def to_snapshot(self) -> dict:
        entry = {"ruleId": self.rule_id, "isDefault": self.is_default, "isEnabled": self.is_enabled}
        if self.tarot_card_identifier is not None:
            entry["tarotCardIdentifier"] = self.tarot_card_identifier
        if self.position is not None:
            entry["position"] = self.position
        if self.could_be_harder is not None:
            entry["couldBeHarder"] = self.could_be_harder
        return entry


class RulesetConfiguration(BaseModel):
    version: str = SNAPSHOT_VERSION
    created_at: datetime | None = None
    ruleset_id: int | None = None
    ruleset_name: str | None = None
    max_concurrent_rules: int | None = None
    rules: list[ConfiguredRule] = []

    @classmethod
    def from_snapshot(cls, raw) -> "RulesetConfiguration":
        if not isinstance(raw, dict):
            return cls()

        rules: list[ConfiguredRule] = []
        seen: set[int] = set()
        for entry in raw.get("rules") or []:
            parsed = _parse_rule_entry(entry)
            if parsed is None or parsed.rule_id in seen:
                continue
            seen.add(parsed.rule_id)
            rules.append(parsed)

        created_at = raw.get("createdAt")
        try:
            created_at = datetime.fromisoformat(created_at) if isinstance(created_at, str) else None
        except ValueError:
            created_at = None

        return cls(
            version=str(raw.get("version") or SNAPSHOT_VERSION),
            created_at=created_at,
            ruleset_id=_strict_int(raw.get("rulesetId")),
            ruleset_name=raw.get("rulesetName") if isinstance(raw.get("rulesetName"), str) else None,
            max_concurrent_rules=_strict_int(raw.get("maxConcurrentRules")),
            rules=rules,
        )

    def to_snapshot(self) -> dict:
        return {
            "version": self.version,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "rulesetId": self.ruleset_id,
            "rulesetName": self.ruleset_name,
            "maxConcurrentRules": self.max_concurrent_rules,
            "rules": [rule.to_snapshot() for rule in self.rules],
        }

    def get(self, rule_id: int) -> ConfiguredRule | None:
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def with_rule_feedback(self, rule_id: int, could_be_harder: bool) -> "RulesetConfiguration":
        """Copy with the host's post-run verdict recorded on one rule."""
        rules = [
            r.model_copy(update={"could_be_harder": could_be_harder}) if r.rule_id == rule_id else r
            for r in self.rules
        ]
        return self.model_copy(update={"rules": rules})

    @property
    def default_rules(self) -> list[ConfiguredRule]:
        return [r for r in self.rules if r.is_default and r.is_enabled]

    @property
    def pickable_rules(self) -> list[ConfiguredRule]:
        return [r for r in self.rules if r.is_pickable]


def _strict_int(value) -> int | None:
    # bool is an int subclass, but True is not a rule id
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _parse_rule_entry(entry) -> ConfiguredRule | None:
    if not isinstance(entry, dict):
        return None
    rule_id = _strict_int(entry.get("ruleId"))
    if rule_id is None:
        return None

    is_enabled = entry.get("isEnabled", True)
    tarot = entry.get("tarotCardIdentifier")
    harder = entry.get("couldBeHarder")
    return ConfiguredRule(
        rule_id=rule_id,
        is_default=entry.get("isDefault") is True,
        is_enabled=is_enabled if isinstance(is_enabled, bool) else False,
        tarot_card_identifier=tarot if isinstance(tarot, str) else None,
        position=_strict_int(entry.get("position")),
        could_be_harder=harder if isinstance(harder, bool) else None,
    )
