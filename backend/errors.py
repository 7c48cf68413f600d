"""
Control action errors.

Every caller-facing failure of a show operation is a ControlActionError
subclass with a machine-checkable ``kind`` and the HTTP status the API layer
answers with. None of them are retried by the engine.
"""


class ControlActionError(Exception):
    """Base class for all show control errors."""

    kind = "ControlActionError"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


# ============ Stage machine ============

class EmptyQueue(ControlActionError):
    kind = "EmptyQueue"
    status_code = 409

    def __init__(self, message: str = "No items in queue. Add a submission first."):
        super().__init__(message)


class WrongStage(ControlActionError):
    kind = "WrongStage"
    status_code = 409


class NoActiveItem(ControlActionError):
    kind = "NoActiveItem"
    status_code = 409


class StateConflict(ControlActionError):
    """The round record changed between read and write."""

    kind = "StateConflict"
    status_code = 409

    def __init__(self, expected_version: int):
        self.expected_version = expected_version
        super().__init__(
            f"Show state changed concurrently (expected version {expected_version}). "
            f"Refresh and retry."
        )


# ============ Queue ============

class NotInQueue(ControlActionError):
    kind = "NotInQueue"
    status_code = 404

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not in the queue")


class QueueMismatch(ControlActionError):
    kind = "QueueMismatch"
    status_code = 400


# ============ Timer ============

class InvalidExtension(ControlActionError):
    kind = "InvalidExtension"
    status_code = 400

    def __init__(self, message: str = "Extension must be positive"):
        super().__init__(message)


class InvalidTimerState(ControlActionError):
    kind = "InvalidTimerState"
    status_code = 409


class NotRunning(InvalidTimerState):
    kind = "NotRunning"

    def __init__(self, message: str = "Timer is not running"):
        super().__init__(message)


class NotPaused(InvalidTimerState):
    kind = "NotPaused"

    def __init__(self, message: str = "Timer is not paused"):
        super().__init__(message)


# ============ Votes & items ============

class InvalidScore(ControlActionError):
    kind = "InvalidScore"
    status_code = 400


class ItemNotFound(ControlActionError):
    kind = "ItemNotFound"
    status_code = 404

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")
