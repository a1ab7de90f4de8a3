"""Service for detecting fraudulent participations and bot activity."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, List, Optional

from core import get_logger
from core.constants import FraudDefaults
from database.base_repository import BaseRepository
from database.models import ParticipationAttempt, to_db_timestamp
from database.repositories import ParticipationRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class FraudScore:
    """Fraud detection result."""
    score: int  # 0 (safe) to 100 (fraud)
    flags: FrozenSet[str] = frozenset()
    reasons: List[str] = field(default_factory=list)
    should_review: bool = False
    should_block: bool = False


class FraudDetectionService:
    """Scores participation attempts from their session and contact signals."""

    def __init__(
        self,
        review_threshold: int = FraudDefaults.REVIEW_THRESHOLD,
        block_threshold: int = FraudDefaults.BLOCK_THRESHOLD,
        ip_velocity_limit: int = FraudDefaults.IP_VELOCITY_LIMIT,
    ) -> None:
        self.review_threshold = review_threshold
        self.block_threshold = block_threshold
        self.ip_velocity_limit = ip_velocity_limit

    async def check_participation(
        self,
        promotion_id: int,
        attempt: ParticipationAttempt,
        now: datetime,
    ) -> FraudScore:
        """Analyze a participation attempt for fraud indicators.

        Args:
            promotion_id: Promotion being entered
            attempt: The participant's submission
            now: Time of the attempt

        Returns:
            FraudScore with detection results
        """
        score = 0
        flags = set()
        reasons = []

        # 1. Completed too fast for a human
        duration = attempt.session_duration
        if duration is not None and duration < FraudDefaults.FAST_COMPLETION_SECONDS:
            score += FraudDefaults.WEIGHT_FAST_COMPLETION
            flags.add("fast_completion")
            reasons.append(f"Session too short: {duration:.1f}s")

        # 2. Many attempts from one IP within the hour
        if attempt.ip_address:
            since = now - timedelta(minutes=FraudDefaults.IP_VELOCITY_WINDOW_MINUTES)
            recent = await ParticipationRepository.count_recent_from_ip(promotion_id, attempt.ip_address, since)
            if recent >= self.ip_velocity_limit:
                score += FraudDefaults.WEIGHT_IP_VELOCITY
                flags.add("ip_velocity")
                reasons.append(f"{recent} attempts from {attempt.ip_address} in the last hour")

        # 3. Name patterns
        full_name = attempt.contact.full_name.lower()
        if full_name and any(pattern in full_name for pattern in FraudDefaults.SUSPICIOUS_NAME_PATTERNS):
            score += FraudDefaults.WEIGHT_SUSPICIOUS_NAME
            flags.add("suspicious_name")
            reasons.append("Suspicious name pattern detected")

        # 4. Throwaway mailbox
        email = (attempt.contact.email or "").strip().lower()
        if "@" in email and email.rsplit("@", 1)[1] in FraudDefaults.DISPOSABLE_EMAIL_DOMAINS:
            score += FraudDefaults.WEIGHT_DISPOSABLE_EMAIL
            flags.add("disposable_email")
            reasons.append(f"Disposable email domain: {email.rsplit('@', 1)[1]}")

        # 5. Scripted client
        agent = (attempt.user_agent or "").lower()
        if agent and any(marker in agent for marker in FraudDefaults.AUTOMATED_AGENT_MARKERS):
            score += FraudDefaults.WEIGHT_AUTOMATED_CLIENT
            flags.add("automated_client")
            reasons.append("Automated client user agent")

        score = min(score, 100)
        should_review = score >= self.review_threshold
        should_block = score >= self.block_threshold

        if should_block:
            logger.warning(
                f"Participation blocked for promotion {promotion_id} due to fraud score {score}",
                extra={"promotion_id": promotion_id, "reasons": reasons},
            )
        elif should_review:
            logger.info(
                f"Suspicious participation for promotion {promotion_id}, score: {score}",
                extra={"promotion_id": promotion_id, "reasons": reasons},
            )

        return FraudScore(
            score=score,
            flags=frozenset(flags),
            reasons=reasons,
            should_review=should_review,
            should_block=should_block,
        )

    async def log_suspicious_activity(
        self,
        promotion_id: int,
        fingerprint: Optional[str],
        activity_type: str,
        score: int,
        details: Dict[str, Any],
        now: datetime,
    ) -> int:
        """Log suspicious activity to the database for review."""
        log_id = await BaseRepository.insert(
            """
            INSERT INTO fraud_log (promotion_id, fingerprint, activity_type, score, details, detected_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (promotion_id, fingerprint, activity_type, score, json.dumps(details), to_db_timestamp(now)),
        )
        logger.info(
            f"Logged suspicious activity: {activity_type} on promotion {promotion_id}",
            extra={"promotion_id": promotion_id, "details": details},
        )
        return log_id

    async def get_fraud_log(self, promotion_id: int, limit: int = 100) -> List[Dict[str, Any]]:
        rows = await BaseRepository.fetch_all(
            "SELECT * FROM fraud_log WHERE promotion_id=? ORDER BY detected_at DESC, id DESC LIMIT ?",
            (promotion_id, limit),
        )
        logs = []
        for row in rows:
            log = {key: row[key] for key in row.keys()}
            log["details"] = json.loads(log["details"]) if log.get("details") else {}
            logs.append(log)
        return logs
