"""
RuleSet - the collection of retention rules and its persistence
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError

from cull_gmail.config import ConfigStore
from cull_gmail.errors import (
    LabelNotFoundInRules,
    NoRuleFoundForLabel,
    RuleNotFound,
    SerializationError,
)
from cull_gmail.models import Action
from cull_gmail.retention import MessageAge, Period, Retention
from cull_gmail.rule import Rule


logger = logging.getLogger(__name__)

DEFAULT_RETENTIONS = [
    MessageAge(Period.YEARS, 1),
    MessageAge(Period.WEEKS, 1),
    MessageAge(Period.MONTHS, 1),
    MessageAge(Period.YEARS, 5),
]


class RuleRecord(BaseModel):
    """One `[rules."<id>"]` table of the rules file"""
    id: int
    retention: str = ''
    labels: List[str] = []
    action: str = Action.TRASH.value
    query: Optional[str] = None


class RuleSet:
    """
    Rules keyed by id.

    No label may belong to two rules; `add` and `add_label_to_rule` refuse
    to create such a state. Ids are assigned as max(existing)+1 so they are
    never reused after removals.
    """

    def __init__(self, store: Optional[ConfigStore] = None):
        self.store = store
        self._rules: Dict[int, Rule] = {}

    @classmethod
    def default(cls, store: Optional[ConfigStore] = None) -> 'RuleSet':
        rules = cls(store)
        for age in DEFAULT_RETENTIONS:
            rules.add(Retention(age, generate_label=True))
        return rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self.rules())

    def rules(self) -> List[Rule]:
        return [self._rules[rule_id] for rule_id in sorted(self._rules)]

    def ids(self) -> List[int]:
        return sorted(self._rules)

    # === Lookup ===

    def get(self, rule_id: int) -> Optional[Rule]:
        rule = self._rules.get(rule_id)
        return rule.copy() if rule else None

    def labels(self) -> List[str]:
        labels = []
        for rule in self.rules():
            labels.extend(rule.labels)
        return labels

    def rules_by_label(self, action: Optional[Action] = None) -> Dict[str, Rule]:
        """Map label -> rule, optionally only for rules with `action`"""
        by_label = {}
        for rule in self.rules():
            if action is not None and rule.action() is not action:
                continue
            for label in rule.labels:
                by_label[label] = rule.copy()
        return by_label

    def _owner_of(self, label: str) -> Optional[Rule]:
        for rule in self.rules():
            if label in rule.labels:
                return rule
        return None

    # === Mutation ===

    def add(self, retention: Retention, label: Optional[str] = None, delete: bool = False) -> 'RuleSet':
        candidates = [label] if label is not None else []
        if retention.generate_label:
            candidates.append(retention.age.label())
        existing = self.labels()
        for candidate in candidates:
            if candidate in existing:
                logger.warning(f"A rule already applies to label `{candidate}`")
                return self

        rule_id = max(self._rules) + 1 if self._rules else 1

        rule = Rule(rule_id)
        rule.set_retention(retention)
        if label is not None:
            rule.add_label(label)
        rule.set_action(Action.DELETE if delete else Action.TRASH)

        self._rules[rule_id] = rule
        logger.info(f"Added rule: {rule}")
        return self

    def remove_by_id(self, rule_id: int) -> None:
        if self._rules.pop(rule_id, None) is None:
            logger.debug(f"Rule #{rule_id} was not present")
        else:
            logger.info(f"Rule #{rule_id} has been removed")

    def remove_by_label(self, label: str) -> None:
        if label not in self.labels():
            raise LabelNotFoundInRules(label)

        rule = self.rules_by_label().get(label)
        if rule is None:
            raise NoRuleFoundForLabel(label)

        del self._rules[rule.id]
        logger.info(f"Rule containing the label `{label}` has been removed")

    def _rule_for_update(self, rule_id: int) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFound(rule_id)
        return rule

    def add_label_to_rule(self, rule_id: int, label: str) -> None:
        rule = self._rule_for_update(rule_id)
        owner = self._owner_of(label)
        if owner is not None and owner.id != rule_id:
            logger.warning(f"Label `{label}` already belongs to rule #{owner.id}, not adding it to rule #{rule_id}")
            return
        rule.add_label(label)
        self.save()
        logger.info(f"Label `{label}` added to rule #{rule_id}")

    def remove_label_from_rule(self, rule_id: int, label: str) -> None:
        rule = self._rule_for_update(rule_id)
        rule.remove_label(label)
        self.save()
        logger.info(f"Label `{label}` removed from rule #{rule_id}")

    def set_action_on_rule(self, rule_id: int, action: Action) -> None:
        rule = self._rule_for_update(rule_id)
        rule.set_action(action)
        self.save()
        logger.info(f"Action set to `{action}` on rule #{rule_id}")

    # === Persistence ===

    def to_dict(self) -> Dict:
        return {'rules': {str(rule.id): rule.to_record() for rule in self.rules()}}

    @classmethod
    def from_dict(cls, data: Dict, store: Optional[ConfigStore] = None) -> 'RuleSet':
        rules = cls(store)
        for key, value in (data.get('rules') or {}).items():
            try:
                record = RuleRecord.model_validate(value)
            except ValidationError as error:
                raise SerializationError(f"Invalid rule `{key}`: {error}") from error
            rules._rules[record.id] = Rule(
                record.id,
                record.retention,
                record.labels,
                record.action,
                record.query
            )
        return rules

    def save(self) -> None:
        if self.store is None:
            logger.debug("Rule set has no store, not saving")
            return
        self.store.save(self.to_dict())

    @classmethod
    def load(cls, store: ConfigStore) -> 'RuleSet':
        return cls.from_dict(store.load(), store)

    @classmethod
    def load_or_default(cls, store: ConfigStore) -> 'RuleSet':
        """Load the rules file, creating it with the default rules when missing"""
        if store.exists():
            return cls.load(store)

        logger.warning(f"Rules file {store.path} not found, creating default rules")
        rules = cls.default(store)
        rules.save()
        return rules
