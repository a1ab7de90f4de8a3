"""Application-wide constants and enumerations."""

from __future__ import annotations

from enum import Enum


class PromotionVariant(str, Enum):
    """Kind of promotion, fixed at creation."""
    WHEEL = "wheel"
    QUIZ = "quiz"
    INSTANT_WIN = "instant_win"
    PHOTO_CONTEST = "photo_contest"


class PromotionStatus(str, Enum):
    """Computed lifecycle status of a promotion."""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class PrizeType(str, Enum):
    """What a prize grants at the host store."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"
    CUSTOM = "custom"


class ParticipationStatus(str, Enum):
    """Terminal state of a recorded participation."""
    COMPLETED = "completed"
    DISQUALIFIED = "disqualified"


class RejectionReason(str, Enum):
    """Business-rule denials reported back to the caller."""
    PROMOTION_NOT_ACTIVE = "PromotionNotActive"
    MISSING_CONTACT = "MissingContact"
    AGE_RESTRICTED = "AgeRestricted"
    ENTRY_LIMIT_EXCEEDED = "EntryLimitExceeded"
    MALFORMED_ENTRY = "MalformedEntry"
    SUBMISSIONS_CLOSED = "SubmissionsClosed"


class RedemptionStatus(str, Enum):
    """Result of a reward redemption attempt."""
    OK = "ok"
    ALREADY_REDEEMED = "already_redeemed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class CapDecision(str, Enum):
    """Result of a cap reservation."""
    GRANTED = "granted"
    DENIED = "denied"


class ForcedOutcome:
    """Reasons a drawn win is converted into a no-win."""
    CAP_EXHAUSTED = "cap_exhausted"
    DISQUALIFIED = "disqualified"


class OperatorAction:
    """Audit log action types."""
    CREATE = "create_promotion"
    UPDATE = "update_promotion"
    PAUSE = "pause_promotion"
    RESUME = "resume_promotion"
    ARCHIVE = "archive_promotion"
    TALLY = "tally_photo_contest"


# Database constants
class DatabaseDefaults:
    """Default database configuration."""
    POOL_SIZE = 10
    BUSY_TIMEOUT = 5000  # milliseconds
    TOTAL_SCOPE = "total"


# Per-variant defaults applied when an operator omits a rule
class VariantDefaults:
    """Default rule values by promotion variant."""
    WHEEL_SEGMENTS = 8
    MIN_SEGMENTS = 3
    MAX_SEGMENTS = 12
    QUIZ_PASSING_SCORE = 70.0
    QUIZ_MAX_ATTEMPTS = 3
    QUIZ_TIME_LIMIT = 60  # seconds
    INSTANT_WIN_PROBABILITY = 0.2
    INSTANT_WIN_MAX_WINS_PER_DAY = 10
    MINIMUM_AGE_FLOOR = 13


# Reward codes
class RewardDefaults:
    """Reward code generation settings."""
    PREFIX = "COMP"
    LENGTH = 10
    ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    GENERATION_ATTEMPTS = 5
    VALIDITY_DAYS = 30


# Fraud scoring
class FraudDefaults:
    """Fraud scoring weights and thresholds."""
    REVIEW_THRESHOLD = 50
    BLOCK_THRESHOLD = 80
    FAST_COMPLETION_SECONDS = 2.0
    IP_VELOCITY_LIMIT = 5
    IP_VELOCITY_WINDOW_MINUTES = 60
    WEIGHT_FAST_COMPLETION = 30
    WEIGHT_IP_VELOCITY = 30
    WEIGHT_SUSPICIOUS_NAME = 20
    WEIGHT_DISPOSABLE_EMAIL = 40
    WEIGHT_AUTOMATED_CLIENT = 30
    SUSPICIOUS_NAME_PATTERNS = ("test", "qwerty", "asdf", "123", "admin", "bot")
    DISPOSABLE_EMAIL_DOMAINS = frozenset({
        "mailinator.com",
        "guerrillamail.com",
        "10minutemail.com",
        "tempmail.com",
        "yopmail.com",
        "trashmail.com",
    })
    AUTOMATED_AGENT_MARKERS = ("bot", "crawler", "spider", "curl", "python-requests", "headless")


# Cache keys
class CacheKeys:
    """Cache key templates."""
    STATS = "stats:{promotion_id}"
