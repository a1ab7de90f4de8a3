"""Services package."""

from .cache import MultiLevelCache, init_cache, get_cache
from .lifecycle import LifecycleService, compute_status
from .eligibility import EligibilityGate, evaluate_eligibility
from .outcome_engine import OutcomeEngine
from .cap_tracker import CapTracker, calendar_day
from .reward_ledger import RewardLedger, make_code_generator
from .stats_aggregator import StatsService, StatsSummary, StatsWindow, summarize
from .fraud_detection_service import FraudDetectionService, FraudScore
from .promotion_service import PromotionService, validate_promotion
from .participation_service import ParticipationService
from .photo_contest import PhotoContestService, TallyResult
from .audit_service import AuditService
from .lifecycle_sweep import LifecycleSweep, SweepReport
from .engine import PromotionEngine

__all__ = [
    "MultiLevelCache",
    "init_cache",
    "get_cache",
    "LifecycleService",
    "compute_status",
    "EligibilityGate",
    "evaluate_eligibility",
    "OutcomeEngine",
    "CapTracker",
    "calendar_day",
    "RewardLedger",
    "make_code_generator",
    "StatsService",
    "StatsSummary",
    "StatsWindow",
    "summarize",
    "FraudDetectionService",
    "FraudScore",
    "PromotionService",
    "validate_promotion",
    "ParticipationService",
    "PhotoContestService",
    "TallyResult",
    "AuditService",
    "LifecycleSweep",
    "SweepReport",
    "PromotionEngine",
]
