"""Core application components."""

from core.logger import setup_logger, get_logger
from core.clock import (
    Clock,
    SystemClock,
    FixedClock,
    RandomSource,
    SystemRandomSource,
    ScriptedRandomSource,
    ensure_utc,
)
from core.constants import (
    PromotionVariant,
    PromotionStatus,
    PrizeType,
    ParticipationStatus,
    RejectionReason,
    RedemptionStatus,
    CapDecision,
    ForcedOutcome,
    OperatorAction,
    DatabaseDefaults,
    VariantDefaults,
    RewardDefaults,
    FraudDefaults,
    CacheKeys,
)
from core.exceptions import (
    ApplicationError,
    ConfigurationError,
    DatabaseError,
    ConcurrencyConflictError,
    PersistenceError,
    ValidationError,
    RuleValidationError,
    PromotionNotFoundError,
    ParticipationNotFoundError,
    InvalidTransitionError,
    VotingError,
    ServiceError,
    RewardError,
    CodeGenerationExhaustedError,
)

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Time and randomness
    'Clock',
    'SystemClock',
    'FixedClock',
    'RandomSource',
    'SystemRandomSource',
    'ScriptedRandomSource',
    'ensure_utc',
    # Constants
    'PromotionVariant',
    'PromotionStatus',
    'PrizeType',
    'ParticipationStatus',
    'RejectionReason',
    'RedemptionStatus',
    'CapDecision',
    'ForcedOutcome',
    'OperatorAction',
    'DatabaseDefaults',
    'VariantDefaults',
    'RewardDefaults',
    'FraudDefaults',
    'CacheKeys',
    # Exceptions
    'ApplicationError',
    'ConfigurationError',
    'DatabaseError',
    'ConcurrencyConflictError',
    'PersistenceError',
    'ValidationError',
    'RuleValidationError',
    'PromotionNotFoundError',
    'ParticipationNotFoundError',
    'InvalidTransitionError',
    'VotingError',
    'ServiceError',
    'RewardError',
    'CodeGenerationExhaustedError',
]
