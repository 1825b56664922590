"""Exception hierarchy shared across Pinchwire components."""


class PinchwireError(Exception):
    """Base exception for Pinchwire."""


class UnknownTaskError(PinchwireError, ValueError):
    """Raised when a governance task name is not registered."""

    def __init__(self, task_name: str) -> None:
        self.task_name = task_name
        super().__init__(f"Unknown governance task: {task_name}")


class JobQueueError(PinchwireError):
    """Raised when the durable job queue backend rejects an operation."""
