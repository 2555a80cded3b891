# ABOUTME: SQL DDL statements for the bookswap marketplace database.
# ABOUTME: Defines tables, uniqueness guards, append-only audit triggers, and migrations.

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%f000', 'now'))"

SCHEMA_V1 = f"""
CREATE TABLE users (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL,
    email      TEXT NOT NULL UNIQUE COLLATE NOCASE,
    location   TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT}
);

CREATE INDEX idx_users_location ON users(location);

-- Scope lives in room_id (NULL = global market), separate from description text
CREATE TABLE books (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id     INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title        TEXT NOT NULL,
    author       TEXT NOT NULL,
    isbn         TEXT,
    condition    TEXT NOT NULL DEFAULT 'used',
    description  TEXT NOT NULL DEFAULT '',
    list_type    TEXT NOT NULL CHECK (list_type IN ('inventory', 'wishlist')),
    is_available INTEGER NOT NULL DEFAULT 1,
    room_id      TEXT,
    created_at   TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    updated_at   TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT}
);

CREATE INDEX idx_books_owner_list ON books(owner_id, list_type);
CREATE INDEX idx_books_isbn ON books(isbn) WHERE isbn IS NOT NULL;
CREATE INDEX idx_books_room ON books(room_id) WHERE room_id IS NOT NULL;

-- participant1_id < participant2_id, one chat per pair
CREATE TABLE chats (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    participant1_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    participant2_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status          TEXT NOT NULL DEFAULT 'active',
    created_at      TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    CHECK (participant1_id < participant2_id),
    UNIQUE (participant1_id, participant2_id)
);

-- Derived match view, rebuilt per user by the match engine
CREATE TABLE matches (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_user_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    counterparty_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    match_type           TEXT NOT NULL
        CHECK (match_type IN ('perfect', 'partial_type1', 'partial_type2')),
    matching_books       TEXT NOT NULL DEFAULT '[]',
    created_at           TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    UNIQUE (owner_user_id, counterparty_user_id)
);

CREATE INDEX idx_matches_counterparty ON matches(counterparty_user_id);

-- User preference, survives match recomputation
CREATE TABLE hidden_matches (
    owner_user_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    counterparty_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    hidden_at            TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    PRIMARY KEY (owner_user_id, counterparty_user_id)
);

CREATE TABLE trades (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    participant1_id INTEGER NOT NULL REFERENCES users(id),
    participant2_id INTEGER NOT NULL REFERENCES users(id),
    proposer_id     INTEGER NOT NULL REFERENCES users(id),
    chat_id         INTEGER NOT NULL REFERENCES chats(id),
    books_offered   TEXT NOT NULL DEFAULT '[]',
    books_requested TEXT NOT NULL DEFAULT '[]',
    status          TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'accepted', 'completed', 'rejected', 'cancelled')),
    reject_reason   TEXT,
    created_at      TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    updated_at      TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    completed_at    TEXT
);

CREATE INDEX idx_trades_participant1 ON trades(participant1_id);
CREATE INDEX idx_trades_participant2 ON trades(participant2_id);

-- One lock row per book; an expired row is reclaimed by the next acquirer
CREATE TABLE book_locks (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id            INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    owner_id           INTEGER NOT NULL REFERENCES users(id),
    locked_for_user_id INTEGER NOT NULL REFERENCES users(id),
    chat_id            INTEGER NOT NULL REFERENCES chats(id),
    trade_id           INTEGER NOT NULL REFERENCES trades(id) ON DELETE CASCADE,
    duration_hours     INTEGER NOT NULL,
    expires_at         TEXT NOT NULL,
    extension_history  TEXT NOT NULL DEFAULT '[]',
    created_at         TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT}
);

CREATE UNIQUE INDEX idx_book_locks_book ON book_locks(book_id);
CREATE INDEX idx_book_locks_trade ON book_locks(trade_id);
CREATE INDEX idx_book_locks_expires ON book_locks(expires_at);

CREATE TABLE book_interests (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id            INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    interested_user_id INTEGER NOT NULL REFERENCES users(id),
    chat_id            INTEGER NOT NULL REFERENCES chats(id),
    trade_id           INTEGER NOT NULL REFERENCES trades(id) ON DELETE CASCADE,
    created_at         TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT}
);

CREATE INDEX idx_book_interests_book ON book_interests(book_id);

-- No foreign key on book_id: history outlives the book row
CREATE TABLE book_audit_log (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id      INTEGER NOT NULL,
    from_user_id INTEGER NOT NULL,
    to_user_id   INTEGER NOT NULL,
    trade_id     INTEGER NOT NULL,
    action       TEXT NOT NULL,
    metadata     TEXT NOT NULL DEFAULT '{{}}',
    created_at   TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT}
);

CREATE INDEX idx_book_audit_book ON book_audit_log(book_id);
CREATE INDEX idx_book_audit_trade ON book_audit_log(trade_id);

CREATE TRIGGER book_audit_log_no_update BEFORE UPDATE ON book_audit_log BEGIN
    SELECT RAISE(ABORT, 'book_audit_log is append-only');
END;

CREATE TRIGGER book_audit_log_no_delete BEFORE DELETE ON book_audit_log BEGIN
    SELECT RAISE(ABORT, 'book_audit_log is append-only');
END;

-- Schema versioning for future migrations
CREATE TABLE schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now'))
);

INSERT INTO schema_version (version) VALUES (1);
"""

MIGRATION_V2 = f"""
-- Post-trade ratings, one per participant per trade
CREATE TABLE ratings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    trade_id     INTEGER NOT NULL REFERENCES trades(id) ON DELETE CASCADE,
    from_user_id INTEGER NOT NULL REFERENCES users(id),
    to_user_id   INTEGER NOT NULL REFERENCES users(id),
    score        INTEGER NOT NULL CHECK (score BETWEEN 1 AND 5),
    comment      TEXT,
    created_at   TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
    UNIQUE (trade_id, from_user_id)
);

CREATE INDEX idx_ratings_to_user ON ratings(to_user_id);

INSERT INTO schema_version (version) VALUES (2);
"""

MIGRATIONS: list[tuple[int, str]] = [
    (2, MIGRATION_V2),
]
