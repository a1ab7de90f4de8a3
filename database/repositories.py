"""Database access layer helpers."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from core.constants import DatabaseDefaults, ParticipationStatus, PromotionVariant
from database.base_repository import BaseRepository
from database.models import (
    Caps,
    Contact,
    EntryRules,
    Outcome,
    ParticipationAttempt,
    ParticipationRecord,
    Prize,
    Promotion,
    Reward,
    RewardCode,
    Window,
    from_db_timestamp,
    rules_from_dict,
    to_db_timestamp,
)


def _prize_json(prize: Optional[Prize]) -> Optional[str]:
    return json.dumps(prize.to_dict()) if prize else None


def _prize_from_json(value: Optional[str]) -> Optional[Prize]:
    return Prize.from_dict(json.loads(value)) if value else None


def row_to_promotion(row: aiosqlite.Row) -> Promotion:
    variant = PromotionVariant(row["variant"])
    return Promotion(
        id=row["id"],
        owner_id=row["owner_id"],
        host_instance_id=row["host_instance_id"],
        name=row["name"],
        description=row["description"] or "",
        variant=variant,
        rules=rules_from_dict(variant, json.loads(row["rules_json"])),
        window=Window(
            start=from_db_timestamp(row["window_start"]),
            end=from_db_timestamp(row["window_end"]),
        ),
        entry_rules=EntryRules(
            max_entries_per_user=row["max_entries_per_user"],
            require_contact=bool(row["require_contact"]),
            minimum_age=row["minimum_age"],
        ),
        caps=Caps(
            max_wins_per_day=row["max_wins_per_day"],
            max_wins_total=row["max_wins_total"],
        ),
        timezone=row["timezone"],
        paused=bool(row["paused"]),
        archived_at=from_db_timestamp(row["archived_at"]),
        reward_validity_days=row["reward_validity_days"],
        status_snapshot=row["status_snapshot"],
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )


_PARTICIPATION_SELECT = """
    SELECT p.*, r.code AS reward_code, r.redeemed AS reward_redeemed,
           r.redeemed_at AS reward_redeemed_at, r.order_value AS reward_order_value,
           r.expires_at AS reward_expires_at
    FROM participations p
    LEFT JOIN reward_codes r ON r.participation_id = p.id
"""


def row_to_participation(row: aiosqlite.Row) -> ParticipationRecord:
    return ParticipationRecord(
        id=row["id"],
        promotion_id=row["promotion_id"],
        fingerprint=row["fingerprint"],
        attempt_ordinal=row["attempt_ordinal"],
        outcome=Outcome.from_payload(json.loads(row["outcome_json"])),
        prize=_prize_from_json(row["prize_json"]),
        status=ParticipationStatus(row["status"]),
        fraud_score=row["fraud_score"],
        fraud_flags=frozenset(json.loads(row["fraud_flags"] or "[]")),
        created_at=from_db_timestamp(row["created_at"]),
        reward=Reward(
            awarded=bool(row["awarded"]),
            code=row["reward_code"],
            redeemed=bool(row["reward_redeemed"]),
            redeemed_at=from_db_timestamp(row["reward_redeemed_at"]),
            order_value=row["reward_order_value"],
            expires_at=from_db_timestamp(row["reward_expires_at"]),
        ),
        contact=Contact(
            email=row["email"],
            phone=row["phone"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            customer_id=row["customer_id"],
        ),
        session_duration=row["session_duration"],
        ip_address=row["ip_address"],
        photo_url=row["photo_url"],
        caption=row["caption"],
    )


def row_to_reward_code(row: aiosqlite.Row) -> RewardCode:
    return RewardCode(
        code=row["code"],
        participation_id=row["participation_id"],
        promotion_id=row["promotion_id"],
        prize=_prize_from_json(row["prize_json"]),
        issued_at=from_db_timestamp(row["issued_at"]),
        expires_at=from_db_timestamp(row["expires_at"]),
        redeemed=bool(row["redeemed"]),
        redeemed_at=from_db_timestamp(row["redeemed_at"]),
        order_value=row["order_value"],
    )


class PromotionRepository(BaseRepository):
    """Repository for promotion rows."""

    @staticmethod
    def _columns(promotion: Promotion) -> Dict[str, Any]:
        return {
            "owner_id": promotion.owner_id,
            "host_instance_id": promotion.host_instance_id,
            "name": promotion.name,
            "description": promotion.description,
            "variant": promotion.variant.value,
            "rules_json": json.dumps(promotion.rules.to_dict()),
            "max_entries_per_user": promotion.entry_rules.max_entries_per_user,
            "require_contact": int(promotion.entry_rules.require_contact),
            "minimum_age": promotion.entry_rules.minimum_age,
            "max_wins_per_day": promotion.caps.max_wins_per_day,
            "max_wins_total": promotion.caps.max_wins_total,
            "window_start": to_db_timestamp(promotion.window.start),
            "window_end": to_db_timestamp(promotion.window.end),
            "timezone": promotion.timezone,
            "paused": int(promotion.paused),
            "archived_at": to_db_timestamp(promotion.archived_at),
            "reward_validity_days": promotion.reward_validity_days,
        }

    @staticmethod
    async def insert_promotion(promotion: Promotion, now: datetime) -> int:
        columns = PromotionRepository._columns(promotion)
        columns["created_at"] = to_db_timestamp(now)
        columns["updated_at"] = to_db_timestamp(now)
        names = ", ".join(columns)
        placeholders = ", ".join(["?"] * len(columns))
        return await BaseRepository.insert(
            f"INSERT INTO promotions ({names}) VALUES ({placeholders})",
            tuple(columns.values()),
        )

    @staticmethod
    async def update_promotion(promotion: Promotion, now: datetime) -> bool:
        """Write the editable columns of a live promotion.

        The paused flag and archive timestamp belong to the operator
        transitions and are never written here.
        """
        columns = PromotionRepository._columns(promotion)
        del columns["paused"], columns["archived_at"]
        columns["updated_at"] = to_db_timestamp(now)
        assignments = ", ".join(f"{name}=?" for name in columns)
        changed = await BaseRepository.execute(
            f"UPDATE promotions SET {assignments} WHERE id=? AND archived_at IS NULL",
            (*columns.values(), promotion.id),
        )
        return changed == 1

    @staticmethod
    async def get(promotion_id: int, conn: Optional[aiosqlite.Connection] = None) -> Optional[Promotion]:
        row = await BaseRepository.fetch_one(
            "SELECT * FROM promotions WHERE id=?", (promotion_id,), conn
        )
        return row_to_promotion(row) if row else None

    @staticmethod
    async def list_promotions(
        owner_id: Optional[str] = None,
        include_archived: bool = False,
    ) -> List[Promotion]:
        query = "SELECT * FROM promotions WHERE 1=1"
        params: List[Any] = []
        if owner_id is not None:
            query += " AND owner_id=?"
            params.append(owner_id)
        if not include_archived:
            query += " AND archived_at IS NULL"
        query += " ORDER BY created_at DESC, id DESC"
        rows = await BaseRepository.fetch_all(query, params)
        return [row_to_promotion(row) for row in rows]

    @staticmethod
    async def set_paused(promotion_id: int, paused: bool, now: datetime) -> bool:
        changed = await BaseRepository.execute(
            "UPDATE promotions SET paused=?, updated_at=? WHERE id=? AND paused=?",
            (int(paused), to_db_timestamp(now), promotion_id, int(not paused)),
        )
        return changed == 1

    @staticmethod
    async def set_archived(promotion_id: int, now: datetime, conn: Optional[aiosqlite.Connection] = None) -> bool:
        changed = await BaseRepository.execute(
            "UPDATE promotions SET archived_at=?, updated_at=? WHERE id=? AND archived_at IS NULL",
            (to_db_timestamp(now), to_db_timestamp(now), promotion_id),
            conn,
        )
        return changed == 1

    @staticmethod
    async def save_status_snapshot(promotion_id: int, status: str, now: datetime) -> bool:
        """Store a listing snapshot of the computed status; returns True if it changed."""
        changed = await BaseRepository.execute(
            """
            UPDATE promotions SET status_snapshot=?, status_checked_at=?
            WHERE id=? AND (status_snapshot IS NULL OR status_snapshot != ?)
            """,
            (status, to_db_timestamp(now), promotion_id, status),
        )
        return changed == 1


class ParticipationRepository(BaseRepository):
    """Repository for participation rows."""

    @staticmethod
    async def count_entries(
        promotion_id: int,
        fingerprint: str,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        value = await BaseRepository.fetch_value(
            "SELECT COUNT(*) FROM participations WHERE promotion_id=? AND fingerprint=?",
            (promotion_id, fingerprint),
            conn,
        )
        return int(value or 0)

    @staticmethod
    async def count_for_promotion(promotion_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        value = await BaseRepository.fetch_value(
            "SELECT COUNT(*) FROM participations WHERE promotion_id=?",
            (promotion_id,),
            conn,
        )
        return int(value or 0)

    @staticmethod
    async def count_recent_from_ip(promotion_id: int, ip_address: str, since: datetime) -> int:
        value = await BaseRepository.fetch_value(
            """
            SELECT COUNT(*) FROM participations
            WHERE promotion_id=? AND ip_address=? AND created_at >= ?
            """,
            (promotion_id, ip_address, to_db_timestamp(since)),
        )
        return int(value or 0)

    @staticmethod
    async def insert_participation(
        conn: aiosqlite.Connection,
        promotion_id: int,
        fingerprint: str,
        attempt_ordinal: int,
        attempt: ParticipationAttempt,
        outcome: Outcome,
        status: ParticipationStatus,
        fraud_score: int,
        fraud_flags: Sequence[str],
        now: datetime,
    ) -> int:
        contact = attempt.contact
        return await BaseRepository.insert(
            """
            INSERT INTO participations (
                promotion_id, fingerprint, attempt_ordinal, variant, outcome_json,
                awarded, prize_json, status, fraud_score, fraud_flags,
                email, phone, first_name, last_name, customer_id, declared_age,
                session_duration, device_type, ip_address, user_agent,
                referral_source, utm_source, utm_medium, utm_campaign,
                photo_url, caption, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                promotion_id,
                fingerprint,
                attempt_ordinal,
                outcome.variant.value,
                json.dumps(outcome.to_payload()),
                int(outcome.positive),
                _prize_json(outcome.prize),
                status.value,
                fraud_score,
                json.dumps(sorted(fraud_flags)),
                contact.email,
                contact.phone,
                contact.first_name,
                contact.last_name,
                contact.customer_id,
                attempt.declared_age,
                attempt.session_duration,
                attempt.device_type,
                attempt.ip_address,
                attempt.user_agent,
                attempt.referral_source,
                attempt.utm_source,
                attempt.utm_medium,
                attempt.utm_campaign,
                attempt.photo_url,
                attempt.caption,
                to_db_timestamp(now),
            ),
            conn,
        )

    @staticmethod
    async def get(participation_id: int, conn: Optional[aiosqlite.Connection] = None) -> Optional[ParticipationRecord]:
        row = await BaseRepository.fetch_one(
            _PARTICIPATION_SELECT + " WHERE p.id=?", (participation_id,), conn
        )
        return row_to_participation(row) if row else None

    @staticmethod
    async def list_for_promotion(
        promotion_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ParticipationRecord]:
        query = _PARTICIPATION_SELECT + " WHERE p.promotion_id=?"
        params: List[Any] = [promotion_id]
        if start is not None:
            query += " AND p.created_at >= ?"
            params.append(to_db_timestamp(start))
        if end is not None:
            query += " AND p.created_at < ?"
            params.append(to_db_timestamp(end))
        query += " ORDER BY p.created_at, p.id"
        rows = await BaseRepository.fetch_all(query, params)
        return [row_to_participation(row) for row in rows]

    @staticmethod
    async def list_awarded_without_code(limit: int = 100) -> List[ParticipationRecord]:
        rows = await BaseRepository.fetch_all(
            _PARTICIPATION_SELECT
            + " WHERE p.awarded=1 AND r.code IS NULL ORDER BY p.id LIMIT ?",
            (limit,),
        )
        return [row_to_participation(row) for row in rows]

    @staticmethod
    async def mark_awarded(
        conn: aiosqlite.Connection,
        participation_id: int,
        prize: Prize,
    ) -> bool:
        """Award-once: flips ``awarded`` only if it was never set."""
        changed = await BaseRepository.execute(
            "UPDATE participations SET awarded=1, prize_json=? WHERE id=? AND awarded=0",
            (_prize_json(prize), participation_id),
            conn,
        )
        return changed == 1


class CapCounterRepository(BaseRepository):
    """Keyed win counters; only ever incremented."""

    @staticmethod
    async def ensure(conn: aiosqlite.Connection, promotion_id: int, scopes: Sequence[str]) -> None:
        for scope in scopes:
            await BaseRepository.execute(
                "INSERT OR IGNORE INTO cap_counters (promotion_id, scope, wins) VALUES (?, ?, 0)",
                (promotion_id, scope),
                conn,
            )

    @staticmethod
    async def read(
        promotion_id: int,
        scope: str,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        value = await BaseRepository.fetch_value(
            "SELECT wins FROM cap_counters WHERE promotion_id=? AND scope=?",
            (promotion_id, scope),
            conn,
        )
        return int(value or 0)

    @staticmethod
    async def increment_below(
        conn: aiosqlite.Connection,
        promotion_id: int,
        scope: str,
        cap: Optional[int],
        now: datetime,
    ) -> bool:
        """Add one win unless the counter already reached ``cap`` (None means uncapped)."""
        changed = await BaseRepository.execute(
            """
            UPDATE cap_counters SET wins = wins + 1, updated_at=?
            WHERE promotion_id=? AND scope=? AND (? IS NULL OR wins < ?)
            """,
            (to_db_timestamp(now), promotion_id, scope, cap, cap),
            conn,
        )
        return changed == 1

    @staticmethod
    async def daily_counts(promotion_id: int) -> Dict[str, int]:
        rows = await BaseRepository.fetch_all(
            "SELECT scope, wins FROM cap_counters WHERE promotion_id=? AND scope != ? ORDER BY scope",
            (promotion_id, DatabaseDefaults.TOTAL_SCOPE),
        )
        return {row["scope"]: row["wins"] for row in rows}


class RewardCodeRepository(BaseRepository):
    """Repository for issued reward codes."""

    @staticmethod
    async def get_by_participation(participation_id: int) -> Optional[RewardCode]:
        row = await BaseRepository.fetch_one(
            "SELECT * FROM reward_codes WHERE participation_id=?", (participation_id,)
        )
        return row_to_reward_code(row) if row else None

    @staticmethod
    async def get_by_code(code: str) -> Optional[RewardCode]:
        row = await BaseRepository.fetch_one("SELECT * FROM reward_codes WHERE code=?", (code,))
        return row_to_reward_code(row) if row else None

    @staticmethod
    async def insert_code(
        code: str,
        participation_id: int,
        promotion_id: int,
        prize: Optional[Prize],
        issued_at: datetime,
        expires_at: Optional[datetime],
    ) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO reward_codes
                (code, participation_id, promotion_id, prize_json, issued_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                code,
                participation_id,
                promotion_id,
                _prize_json(prize),
                to_db_timestamp(issued_at),
                to_db_timestamp(expires_at),
            ),
        )

    @staticmethod
    async def mark_redeemed(code: str, order_value: Optional[float], now: datetime) -> bool:
        """Single compare-and-set on ``redeemed``; refuses expired codes."""
        changed = await BaseRepository.execute(
            """
            UPDATE reward_codes SET redeemed=1, redeemed_at=?, order_value=?
            WHERE code=? AND redeemed=0 AND (expires_at IS NULL OR expires_at > ?)
            """,
            (to_db_timestamp(now), order_value, code, to_db_timestamp(now)),
        )
        return changed == 1


class PhotoContestRepository(BaseRepository):
    """Votes and tally results for photo contests."""

    @staticmethod
    async def insert_vote(
        promotion_id: int,
        participation_id: int,
        voter_fingerprint: str,
        now: datetime,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO photo_votes (promotion_id, participation_id, voter_fingerprint, voted_at)
            VALUES (?, ?, ?, ?)
            """,
            (promotion_id, participation_id, voter_fingerprint, to_db_timestamp(now)),
        )

    @staticmethod
    async def vote_counts(promotion_id: int, conn: Optional[aiosqlite.Connection] = None) -> List[aiosqlite.Row]:
        """Every submission with its vote count, including those with none."""
        return await BaseRepository.fetch_all(
            """
            SELECT p.id AS participation_id, p.created_at AS submitted_at,
                   COUNT(v.id) AS votes
            FROM participations p
            LEFT JOIN photo_votes v ON v.participation_id = p.id
            WHERE p.promotion_id=? AND p.status=?
            GROUP BY p.id
            """,
            (promotion_id, ParticipationStatus.COMPLETED.value),
            conn,
        )

    @staticmethod
    async def get_result(promotion_id: int, conn: Optional[aiosqlite.Connection] = None) -> Optional[aiosqlite.Row]:
        return await BaseRepository.fetch_one(
            "SELECT * FROM photo_contest_results WHERE promotion_id=?", (promotion_id,), conn
        )

    @staticmethod
    async def insert_result(
        conn: aiosqlite.Connection,
        promotion_id: int,
        winner_participation_id: Optional[int],
        winning_votes: int,
        now: datetime,
    ) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO photo_contest_results
                (promotion_id, winner_participation_id, winning_votes, tallied_at)
            VALUES (?, ?, ?, ?)
            """,
            (promotion_id, winner_participation_id, winning_votes, to_db_timestamp(now)),
            conn,
        )
