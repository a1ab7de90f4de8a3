"""Database schema migrations."""

from __future__ import annotations

from .connection import OptimizedSQLitePool


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS promotions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner_id TEXT NOT NULL,
        host_instance_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT DEFAULT '',
        variant TEXT NOT NULL,
        rules_json TEXT NOT NULL,
        max_entries_per_user INTEGER NOT NULL DEFAULT 1,
        require_contact INTEGER NOT NULL DEFAULT 1,
        minimum_age INTEGER,
        max_wins_per_day INTEGER,
        max_wins_total INTEGER,
        window_start TEXT NOT NULL,
        window_end TEXT,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        paused INTEGER NOT NULL DEFAULT 0,
        archived_at TEXT,
        reward_validity_days INTEGER,
        status_snapshot TEXT,
        status_checked_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_promotions_owner ON promotions(owner_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_promotions_instance ON promotions(host_instance_id, status_snapshot);",
    "CREATE INDEX IF NOT EXISTS idx_promotions_window ON promotions(window_start, window_end);",
    """
    CREATE TABLE IF NOT EXISTS participations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        promotion_id INTEGER NOT NULL,
        fingerprint TEXT NOT NULL,
        attempt_ordinal INTEGER NOT NULL,
        variant TEXT NOT NULL,
        outcome_json TEXT NOT NULL,
        awarded INTEGER NOT NULL DEFAULT 0,
        prize_json TEXT,
        status TEXT NOT NULL DEFAULT 'completed',
        fraud_score INTEGER NOT NULL DEFAULT 0,
        fraud_flags TEXT NOT NULL DEFAULT '[]',
        email TEXT,
        phone TEXT,
        first_name TEXT,
        last_name TEXT,
        customer_id TEXT,
        declared_age INTEGER,
        session_duration REAL,
        device_type TEXT,
        ip_address TEXT,
        user_agent TEXT,
        referral_source TEXT,
        utm_source TEXT,
        utm_medium TEXT,
        utm_campaign TEXT,
        photo_url TEXT,
        caption TEXT,
        created_at TEXT NOT NULL,
        UNIQUE(promotion_id, fingerprint, attempt_ordinal),
        FOREIGN KEY(promotion_id) REFERENCES promotions(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_participations_promotion ON participations(promotion_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_participations_fingerprint ON participations(promotion_id, fingerprint);",
    "CREATE INDEX IF NOT EXISTS idx_participations_ip ON participations(promotion_id, ip_address, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_participations_awarded ON participations(promotion_id, awarded);",
    """
    CREATE TABLE IF NOT EXISTS cap_counters (
        promotion_id INTEGER NOT NULL,
        scope TEXT NOT NULL,
        wins INTEGER NOT NULL DEFAULT 0 CHECK (wins >= 0),
        updated_at TEXT,
        PRIMARY KEY (promotion_id, scope),
        FOREIGN KEY(promotion_id) REFERENCES promotions(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS reward_codes (
        code TEXT PRIMARY KEY,
        participation_id INTEGER UNIQUE NOT NULL,
        promotion_id INTEGER NOT NULL,
        prize_json TEXT,
        issued_at TEXT NOT NULL,
        expires_at TEXT,
        redeemed INTEGER NOT NULL DEFAULT 0,
        redeemed_at TEXT,
        order_value REAL,
        FOREIGN KEY(participation_id) REFERENCES participations(id),
        FOREIGN KEY(promotion_id) REFERENCES promotions(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_reward_codes_promotion ON reward_codes(promotion_id, redeemed);",
    """
    CREATE TABLE IF NOT EXISTS photo_votes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        promotion_id INTEGER NOT NULL,
        participation_id INTEGER NOT NULL,
        voter_fingerprint TEXT NOT NULL,
        voted_at TEXT NOT NULL,
        UNIQUE(promotion_id, voter_fingerprint),
        FOREIGN KEY(promotion_id) REFERENCES promotions(id),
        FOREIGN KEY(participation_id) REFERENCES participations(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_photo_votes_participation ON photo_votes(participation_id);",
    """
    CREATE TABLE IF NOT EXISTS photo_contest_results (
        promotion_id INTEGER PRIMARY KEY,
        winner_participation_id INTEGER,
        winning_votes INTEGER NOT NULL DEFAULT 0,
        tallied_at TEXT NOT NULL,
        FOREIGN KEY(promotion_id) REFERENCES promotions(id),
        FOREIGN KEY(winner_participation_id) REFERENCES participations(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS fraud_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        promotion_id INTEGER NOT NULL,
        fingerprint TEXT,
        activity_type TEXT NOT NULL,
        score INTEGER NOT NULL,
        details TEXT,
        detected_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_fraud_log_promotion ON fraud_log(promotion_id, detected_at);",
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        operator TEXT NOT NULL,
        action_type TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id INTEGER,
        old_value TEXT,
        new_value TEXT,
        reason TEXT,
        created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_log_operator ON audit_log(operator, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log(entity_type, entity_id);",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action_type, created_at);",
)


async def run_migrations(pool: OptimizedSQLitePool) -> None:
    async with pool.connection() as conn:
        await conn.execute("BEGIN")
        try:
            for statement in SCHEMA_SQL:
                await conn.execute(statement)
        except Exception:
            await conn.rollback()
            raise
        else:
            await conn.commit()
