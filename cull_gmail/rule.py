"""
Rule - a retention policy bound to a set of labels and a terminal action
"""

from datetime import datetime
from typing import Dict, List, Optional

from cull_gmail.deadline import eol_query
from cull_gmail.models import Action
from cull_gmail.retention import MessageAge, Retention


class Rule:
    """
    End-of-life rule identified by `id`.

    The retention is stored in its canonical string form (`y:5`) and the
    action as its word (`trash`), which is how both are persisted.
    """

    def __init__(
        self,
        id: int,
        retention: str = '',
        labels: Optional[List[str]] = None,
        action: str = Action.TRASH.value,
        query: Optional[str] = None
    ):
        self.id = id
        self.retention = retention
        self._labels = set(labels or [])
        self._action = action
        self.query = query

    # === Retention ===

    def set_retention(self, retention: Retention) -> 'Rule':
        self.retention = retention.age.to_canonical()
        if retention.generate_label:
            self.add_label(retention.age.label())
        return self

    def message_age(self) -> Optional[MessageAge]:
        return MessageAge.parse(self.retention)

    # === Labels ===

    @property
    def labels(self) -> List[str]:
        return sorted(self._labels)

    def add_label(self, label: str) -> 'Rule':
        self._labels.add(label)
        return self

    def remove_label(self, label: str) -> None:
        self._labels.discard(label)

    # === Action ===

    def set_action(self, action: Action) -> 'Rule':
        self._action = action.value
        return self

    def action(self) -> Optional[Action]:
        return Action.parse(self._action)

    # === Description ===

    def _action_count_period(self):
        age = self.message_age()
        count = age.count if age else 0
        period = ''
        if age:
            period = age.period.singular if count == 1 else age.period.word
        action = self.action()
        phrase = action.phrase if action else f"apply `{self._action}` to the message"
        return phrase, count, period

    def describe(self) -> str:
        """Human sentence, e.g. 'Rule #3, to delete the message if it is more than 1 year old.'"""
        if self.message_age() is None:
            return "Complete retention rule not set."
        phrase, count, period = self._action_count_period()
        return f"Rule #{self.id}, to {phrase} if it is more than {count} {period} old."

    def __str__(self) -> str:
        if self.message_age() is None:
            return "Complete retention rule not set."
        phrase, count, period = self._action_count_period()
        labels = ", ".join(self.labels)
        return f"Rule #{self.id} is active on `{labels}` to {phrase} if it is more than {count} {period} old."

    def __repr__(self) -> str:
        return f"Rule(id={self.id}, retention={self.retention!r}, labels={self.labels}, action={self._action!r})"

    # === Query ===

    def eol_query(self, today: Optional[datetime] = None) -> Optional[str]:
        """`before: YYYY-MM-DD` for this rule's retention, None if it does not parse"""
        return eol_query(self.retention, today)

    # === Persistence ===

    def copy(self) -> 'Rule':
        return Rule(self.id, self.retention, list(self._labels), self._action, self.query)

    def to_record(self) -> Dict:
        record = {
            'id': self.id,
            'retention': self.retention,
            'labels': self.labels,
            'action': self._action,
        }
        if self.query is not None:
            record['query'] = self.query
        return record
