"""
Error taxonomy for Cull Gmail
"""


class CullGmailError(Exception):
    """Base class for every error raised by cull_gmail"""


# === Retention ===

class InvalidPeriod(CullGmailError):
    def __init__(self, period: str):
        super().__init__(f"Invalid retention period `{period}`, expected days, weeks, months or years")
        self.period = period


class NonPositiveCount(CullGmailError):
    def __init__(self, count: int):
        super().__init__(f"Retention count must be greater than zero, got {count}")
        self.count = count


class InvalidComputedDate(CullGmailError):
    """Month or year arithmetic landed on a day the calendar does not have"""

    def __init__(self, year: int, month: int, day: int):
        super().__init__(f"Computed deadline {year:04d}-{month:02d}-{day:02d} is not a valid calendar date")
        self.year = year
        self.month = month
        self.day = day


# === Paging ===

class InvalidPagingMode(CullGmailError):
    def __init__(self, pages):
        super().__init__(f"Invalid number of pages `{pages}`, use 0 for all pages or a positive count")
        self.pages = pages


class InvalidMaxResults(CullGmailError):
    def __init__(self, max_results):
        super().__init__(f"Max results must be between 1 and 500, got {max_results}")
        self.max_results = max_results


# === Configuration directory ===

class DirectoryUnset(CullGmailError):
    def __init__(self):
        super().__init__("Configuration directory not set")


class HomeExpansionFailed(CullGmailError):
    def __init__(self, path: str):
        super().__init__(f"Expansion of home directory in `{path}` failed")
        self.path = path


class DirectoryCreationFailed(CullGmailError):
    def __init__(self, path: str, reason: str = ""):
        super().__init__(f"Directory creation failed for `{path}`: {reason}" if reason else f"Directory creation failed for `{path}`")
        self.path = path


# === Rules ===

class NoRuleSelector(CullGmailError):
    def __init__(self):
        super().__init__("No rule selector specified (use --id or --label)")


class NoRuleFoundForLabel(CullGmailError):
    def __init__(self, label: str):
        super().__init__(f"No rule found for label `{label}`")
        self.label = label


class LabelNotFoundInRules(CullGmailError):
    def __init__(self, label: str):
        super().__init__(f"Label `{label}` not found in the rule set")
        self.label = label


class RuleNotFound(CullGmailError):
    def __init__(self, rule_id: int):
        super().__init__(f"No rule for rule id `{rule_id}`")
        self.rule_id = rule_id


class NoQueryStringCalculated(CullGmailError):
    def __init__(self, rule_id: int):
        super().__init__(f"No query string calculated for rule #{rule_id}")
        self.rule_id = rule_id


# === Mailbox ===

class LabelNotFoundInMailbox(CullGmailError):
    def __init__(self, label: str):
        super().__init__(f"Label `{label}` not found in the mailbox")
        self.label = label


class NoLabelsFound(CullGmailError):
    def __init__(self):
        super().__init__("No labels found in the mailbox")


class ExternalError(CullGmailError):
    """Provider or transport failure, the original error is kept as __cause__"""


# === Files ===

class SerializationError(CullGmailError):
    pass


class FileIo(CullGmailError):
    pass


class TokenNotFound(CullGmailError):
    pass
