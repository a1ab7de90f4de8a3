"""Application-wide exception classes."""

from __future__ import annotations

from typing import Iterable, Optional


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for database-related errors."""
    pass


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool has issues."""
    pass


class ConcurrencyConflictError(DatabaseError):
    """Raised when a write lost a race and may be retried."""
    pass


class PersistenceError(DatabaseError):
    """Raised when a write failed and must not be presumed committed."""
    pass


class ValidationError(ApplicationError):
    """Raised when data supplied by the caller is malformed."""
    pass


class RuleValidationError(ValidationError):
    """Raised when promotion rules are rejected at save time."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class PromotionNotFoundError(ValidationError):
    """Raised when a promotion id does not resolve."""

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} not found")


class ParticipationNotFoundError(ValidationError):
    """Raised when a participation id does not resolve."""

    def __init__(self, participation_id: int):
        self.participation_id = participation_id
        super().__init__(f"Participation {participation_id} not found")


class InvalidTransitionError(ValidationError):
    """Raised when an operator action is not allowed from the current status."""

    def __init__(self, action: str, status: str, detail: Optional[str] = None):
        self.action = action
        self.status = status
        message = f"Cannot {action} a promotion in status '{status}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VotingError(ValidationError):
    """Raised when a photo contest vote or tally is not allowed."""
    pass


class ServiceError(ApplicationError):
    """Base exception for service-level errors."""
    pass


class RewardError(ServiceError):
    """Base exception for reward ledger operations."""
    pass


class CodeGenerationExhaustedError(RewardError):
    """Raised when no unique reward code could be generated."""

    def __init__(self, participation_id: int, attempts: int):
        self.participation_id = participation_id
        self.attempts = attempts
        super().__init__(
            f"Could not generate a unique reward code for participation "
            f"{participation_id} after {attempts} attempts"
        )
