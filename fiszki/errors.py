"""
Exceptions raised by fiszki.
"""
from typing import Optional


class FiszkiError(Exception):
    """Base exception for all fiszki errors."""
    pass


class ValidationError(FiszkiError):
    """Raised when a card candidate has an empty front or back."""
    pass


class DuplicateCandidate(FiszkiError):
    """Raised when a single card's front already exists for the user."""

    def __init__(self, front: str) -> None:
        super().__init__(f"Card '{front}' already exists")
        self.front = front


class StorageError(FiszkiError):
    """Base for failures reported by the storage collaborator."""
    pass


class StorageUnavailable(StorageError):
    """Raised when the store cannot be reached for a read."""
    pass


class AuthRequired(StorageError):
    """Raised when a storage call is made without a user."""
    pass


class StorageWriteError(StorageError):
    """Raised when an insert, update or delete is rejected."""
    pass


class PartialDeleteError(StorageWriteError):
    """Raised when only one half of the two-step card delete went through."""

    def __init__(self, card_id: int, progress_deleted: bool, card_deleted: bool,
                 cause: Optional[BaseException] = None) -> None:
        super().__init__(
            f"Partial delete of card {card_id}: "
            f"progress {'removed' if progress_deleted else 'kept'}, "
            f"card {'removed' if card_deleted else 'kept'}"
        )
        self.card_id = card_id
        self.progress_deleted = progress_deleted
        self.card_deleted = card_deleted
        self.cause = cause


class SessionError(FiszkiError):
    """Base for review-session misuse."""
    pass


class InvalidTransition(SessionError):
    """Raised when an action is not allowed in the session's current state."""
    pass


class SessionBusy(SessionError):
    """Raised when a second grade is submitted before the first completes."""
    pass
