"""SQL schema definitions for pitch-ledger.

Money columns hold integer cents; odds are REAL.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS stages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS teams (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS matches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    stage_id INTEGER NOT NULL REFERENCES stages(id),
    home_team_id INTEGER NOT NULL REFERENCES teams(id),
    away_team_id INTEGER NOT NULL REFERENCES teams(id),
    home_score INTEGER NOT NULL DEFAULT 0,
    away_score INTEGER NOT NULL DEFAULT 0,
    full_time_score TEXT,
    match_date TEXT NOT NULL,
    match_time TEXT,
    status TEXT NOT NULL DEFAULT 'SCHEDULED'
        CHECK (status IN ('SCHEDULED', 'COMPLETED')),
    result TEXT CHECK (result IN ('HOME_WIN', 'AWAY_WIN', 'DRAW')),
    is_final INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK ((status = 'COMPLETED') = (result IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS odds_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    match_id INTEGER NOT NULL REFERENCES matches(id),
    home_odds REAL,
    draw_odds REAL,
    away_odds REAL,
    captured_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS account (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    balance_cents INTEGER NOT NULL CHECK (balance_cents >= 0),
    total_deposits_cents INTEGER NOT NULL DEFAULT 0,
    total_withdrawals_cents INTEGER NOT NULL DEFAULT 0,
    total_wins INTEGER NOT NULL DEFAULT 0,
    total_losses INTEGER NOT NULL DEFAULT 0,
    total_profit_loss_cents INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    match_id INTEGER NOT NULL REFERENCES matches(id),
    side TEXT NOT NULL CHECK (side IN ('HOME', 'DRAW', 'AWAY')),
    odds_taken REAL NOT NULL,
    stake_cents INTEGER NOT NULL CHECK (stake_cents > 0),
    potential_payout_cents INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING'
        CHECK (status IN ('PENDING', 'WON', 'LOST', 'PUSH')),
    actual_payout_cents INTEGER NOT NULL DEFAULT 0,
    profit_loss_cents INTEGER NOT NULL DEFAULT 0,
    placed_at TEXT NOT NULL,
    settled_at TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bet_id INTEGER REFERENCES bets(id),
    kind TEXT NOT NULL
        CHECK (kind IN ('DEPOSIT', 'WITHDRAWAL', 'BET_PLACED', 'BET_SETTLEMENT')),
    amount_cents INTEGER NOT NULL,
    balance_before_cents INTEGER NOT NULL,
    balance_after_cents INTEGER NOT NULL,
    description TEXT,
    occurred_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_matches_natural_key
    ON matches(stage_id, home_team_id, away_team_id, match_date);

CREATE INDEX IF NOT EXISTS idx_matches_status
    ON matches(status, created_at);

CREATE INDEX IF NOT EXISTS idx_odds_match
    ON odds_snapshots(match_id, id);

CREATE INDEX IF NOT EXISTS idx_bets_match_status
    ON bets(match_id, status);
"""
