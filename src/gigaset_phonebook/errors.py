"""Exception hierarchy shared by the import pipeline, the store and the server."""
from __future__ import annotations


class PhonebookError(Exception):
    """Base class for every error this package raises on purpose."""


class ParseError(PhonebookError):
    """A source file could not be read as vCard or JSON phonebook data."""


class NotFoundError(PhonebookError):
    """An update or delete referenced an entry id that is not in the store."""

    def __init__(self, entry_id: str):
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


class InvalidStrategyError(PhonebookError):
    """The merge strategy named by the caller is not one we know."""


class InvalidPlanError(PhonebookError):
    """A confirm payload is not a well-formed import plan."""


class ImportBlockedError(PhonebookError):
    """The plan carries an error-severity validation issue."""

    def __init__(self, issues):
        self.issues = list(issues)
        super().__init__("; ".join(i.message for i in self.issues) or "Import blocked")


class InvalidSettingError(PhonebookError):
    """A settings value failed validation."""
