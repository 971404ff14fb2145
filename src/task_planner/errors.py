"""Exceptions raised by the scheduling engine and its collaborators."""


class InvalidDate(ValueError):
    """A date string could not be parsed as a calendar date."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid date: {value!r}")
        self.value = value


class AmbiguousRecurrenceAnchor(ValueError):
    """A recurring task has neither a usable due date nor creation date."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Recurring task {task_id} has no resolvable anchor date")
        self.task_id = task_id


class PersistenceFailure(RuntimeError):
    """The store rejected a mutation; local state has been rolled back."""


class StoreError(Exception):
    """The persistence collaborator failed to apply a change."""


class DuplicateCompletion(StoreError):
    """The store already holds a completion for (task_id, instance_date)."""

    def __init__(self, task_id: str, instance_date: str, existing: object | None = None) -> None:
        super().__init__(f"Completion already exists: {task_id} @ {instance_date}")
        self.task_id = task_id
        self.instance_date = instance_date
        self.existing = existing


class NotFoundError(LookupError):
    """Unknown task or category id."""


class ValidationFailure(ValueError):
    """Rejected user input (empty title, duplicate category, bad enum value)."""
