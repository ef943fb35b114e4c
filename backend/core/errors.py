"""
errors.py — Exceptions raised by the gradebook engine.

Routes translate these into HTTP responses; the core never catches its own
errors.
"""


class GradebookError(Exception):
    """Base class for every gradebook failure."""


class ValidationError(GradebookError):
    """Input rejected before any state was touched."""


class NotFoundError(GradebookError):
    """Unknown indicator, component or session id."""


class GradebookLocked(GradebookError):
    """An edit arrived while the gradebook was being hydrated."""


class SchemaInvariantWarning(GradebookError, UserWarning):
    """
    Component weights do not add up to 100 within tolerance.

    Non-fatal for editing; only the save action raises it.
    """


class PersistenceError(GradebookError):
    """The GraphQL backend failed, timed out or refused the save."""
