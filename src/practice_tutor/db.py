"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = str(Path.home() / ".practice_tutor" / "tutor.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS routes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    objective TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS route_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    route_id INTEGER NOT NULL REFERENCES routes(id),
    parent_id INTEGER,
    item_type TEXT NOT NULL,
    custom_name TEXT,
    order_index INTEGER DEFAULT 0,
    estimated_time INTEGER,
    difficulty TEXT
);

CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt TEXT NOT NULL,
    options TEXT NOT NULL,
    answer_key TEXT NOT NULL,
    explanation TEXT,
    topic_name TEXT,
    subtopic_name TEXT
);

CREATE TABLE IF NOT EXISTS attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    question_id INTEGER NOT NULL REFERENCES questions(id),
    user_answer TEXT NOT NULL,
    is_correct INTEGER NOT NULL,
    time_spent INTEGER NOT NULL,
    source TEXT DEFAULT 'practice',
    session_id TEXT,
    error_type TEXT,
    answered_at TEXT
);

CREATE TABLE IF NOT EXISTS reasoning_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    attempt_id INTEGER NOT NULL UNIQUE REFERENCES attempts(id),
    user_reasoning TEXT NOT NULL,
    technique_1_feedback TEXT,
    technique_2_feedback TEXT,
    overall_feedback TEXT,
    created_at TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
