from __future__ import annotations


class SmartSplitError(Exception):
    """Base class for errors whose message is safe to show to a user."""


class InvariantViolation(SmartSplitError, ValueError):
    """A mutation was refused because it would leave the state invalid."""


class SnapshotTooLargeError(SmartSplitError):
    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            f"The share link would be {length} characters (limit {limit}). Use /export to share a backup file instead."
        )
        self.length = length
        self.limit = limit


class MalformedImportError(SmartSplitError, ValueError):
    pass


class RoomTransportError(SmartSplitError):
    pass


class ReceiptRecognitionError(SmartSplitError):
    pass


class RoomNotFoundError(SmartSplitError):
    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id} does not exist. Check the link or start a new room with /room.")
        self.room_id = room_id
