"""
Retention value objects - message age and label generation policy
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cull_gmail.errors import InvalidPeriod, NonPositiveCount


CANONICAL_PATTERN = re.compile(r'^(?P<unit>[dwmy]):(?P<count>[0-9]+)$')


class Period(Enum):
    """Unit of a retention period, valued by its canonical letter"""
    DAYS = 'd'
    WEEKS = 'w'
    MONTHS = 'm'
    YEARS = 'y'

    @property
    def word(self) -> str:
        """Plural period word, e.g. 'months'"""
        return self.name.lower()

    @property
    def singular(self) -> str:
        return self.word[:-1]

    @classmethod
    def from_word(cls, word: str) -> 'Period':
        try:
            return cls[word.strip().upper()]
        except KeyError:
            raise InvalidPeriod(word) from None


@dataclass(frozen=True)
class MessageAge:
    """Age threshold for messages, e.g. MessageAge(Period.YEARS, 5)"""
    period: Period
    count: int

    def __post_init__(self):
        if self.count <= 0:
            raise NonPositiveCount(self.count)

    @classmethod
    def new(cls, period: str, count: int) -> 'MessageAge':
        """Build from a period word (days, weeks, months, years; any case)"""
        return cls(Period.from_word(period), count)

    @classmethod
    def parse(cls, value: str) -> Optional['MessageAge']:
        """Parse the canonical `<u>:<n>` form, None for anything else"""
        match = CANONICAL_PATTERN.match(value or '')
        if not match:
            return None
        count = int(match.group('count'))
        if count <= 0:
            return None
        return cls(Period(match.group('unit')), count)

    def to_canonical(self) -> str:
        return f"{self.period.value}:{self.count}"

    def label(self) -> str:
        return f"retention/{self.count}-{self.period.word}"

    def __str__(self) -> str:
        return self.to_canonical()


@dataclass(frozen=True)
class Retention:
    """Retention policy: an age and whether a classifying label is generated"""
    age: MessageAge
    generate_label: bool = True
