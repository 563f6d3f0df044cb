"""
Shared data models for Cull Gmail
"""

from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import List, Optional


NO_SUBJECT = '*** No Subject for Message ***'
NO_DATE = '*** No Date for Message ***'
INVALID_LISTING = '***invalid date or subject***'

DEFAULT_MAX_RESULTS = 200
MAX_RESULTS_LIMIT = 500


class Action(Enum):
    """Terminal action applied to messages past their retention"""
    TRASH = 'trash'
    DELETE = 'delete'

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['Action']:
        """Case-insensitive parse, None when the value is not an action"""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def is_reversible(self) -> bool:
        return self is Action.TRASH

    @property
    def phrase(self) -> str:
        if self is Action.TRASH:
            return 'move the message to trash'
        return 'delete the message'

    @property
    def outcome(self) -> str:
        """Past-tense description used in post-action log records"""
        if self is Action.TRASH:
            return 'moved to trash'
        return 'permanently deleted'

    def __str__(self) -> str:
        return self.value


@dataclass
class MessageSummary:
    """A message id with the headers fetched for it, if any"""
    id: str
    subject: Optional[str] = None
    date: Optional[str] = None

    @property
    def subject_text(self) -> str:
        return self.subject if self.subject is not None else NO_SUBJECT

    @property
    def date_text(self) -> str:
        return self.date if self.date is not None else NO_DATE

    def list_date_and_subject(self) -> str:
        """Render '<DD Mon YYYY>: <subject>' for listings"""
        if self.date is None or self.subject is None:
            return INVALID_LISTING
        try:
            sent = parsedate_to_datetime(self.date)
        except (TypeError, ValueError):
            return INVALID_LISTING
        return f"{sent.strftime('%d %b %Y')}: {self.subject}"


@dataclass
class SelectorConfig:
    """Configuration for message selection"""
    query: str = ''
    label_ids: List[str] = field(default_factory=list)
    max_results: int = DEFAULT_MAX_RESULTS
    pages: int = 1  # 0 means every page
    limit: Optional[int] = None


@dataclass
class ApplierConfig:
    """Configuration for applying an action to selected messages"""
    action: Action = Action.TRASH
    execute: bool = False


@dataclass
class RuleOutcome:
    """What happened to a single label while running the rules"""
    label: str
    rule_id: Optional[int] = None
    action: Optional[Action] = None
    message_ids: List[str] = field(default_factory=list)
    executed: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class RunSummary:
    """Aggregate result of a rule engine run"""
    execute: bool
    outcomes: List[RuleOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[RuleOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def completed(self) -> List[RuleOutcome]:
        return [o for o in self.outcomes if not o.failed and o.action is not None]

    @property
    def messages_selected(self) -> int:
        return sum(len(o.message_ids) for o in self.outcomes)
