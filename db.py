"""PostgreSQL access helpers shared by the score, roster and approval modules."""

import logging
import os
from contextlib import contextmanager

import psycopg2
import psycopg2.errors
from dotenv import load_dotenv
from psycopg2.extras import DictCursor

from score_errors import Conflict, InvalidInput, StorageUnavailable

load_dotenv()

DATABASE_URL = os.environ.get('DATABASE_URL', '').strip()
DB_CONNECT_TIMEOUT = int(os.environ.get('DB_CONNECT_TIMEOUT', '10') or 10)
DB_STATEMENT_TIMEOUT_MS = int(os.environ.get('DB_STATEMENT_TIMEOUT_MS', '15000') or 15000)

REQUIRED_INDEXES = {
    'uq_student_scores_key',
    'uq_result_summary_scope',
}

SCHEMA_STATEMENTS = [
    '''CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            full_name TEXT,
            user_role TEXT NOT NULL DEFAULT 'teacher',
            school TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS students (
            id TEXT PRIMARY KEY,
            student_no TEXT,
            surname TEXT NOT NULL,
            firstname TEXT NOT NULL,
            othername TEXT,
            school TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS subjects (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            code TEXT,
            category TEXT
        )''',
    '''CREATE TABLE IF NOT EXISTS student_classes (
            id SERIAL PRIMARY KEY,
            student_id TEXT NOT NULL,
            class_id TEXT NOT NULL,
            class_group TEXT,
            school_session TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS student_class_subjects (
            id SERIAL PRIMARY KEY,
            student_id TEXT NOT NULL,
            class_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            school_session TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS teacher_class_subjects (
            id SERIAL PRIMARY KEY,
            user_id TEXT NOT NULL,
            class_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            school_session TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS form_teachers (
            id SERIAL PRIMARY KEY,
            teacher_id TEXT NOT NULL,
            class_id TEXT NOT NULL,
            class_group TEXT,
            school_session TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS student_scores (
            id SERIAL PRIMARY KEY,
            student_id TEXT NOT NULL,
            class_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            school_session TEXT NOT NULL,
            school_term TEXT NOT NULL,
            assess_1 NUMERIC(8,2) NOT NULL DEFAULT 0,
            assess_2 NUMERIC(8,2) NOT NULL DEFAULT 0,
            test_1 NUMERIC(8,2) NOT NULL DEFAULT 0,
            test_2 NUMERIC(8,2) NOT NULL DEFAULT 0,
            exam NUMERIC(8,2) NOT NULL DEFAULT 0,
            total NUMERIC(8,2) NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'active',
            added_by TEXT,
            updated_by TEXT,
            date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            date_updated TIMESTAMP
        )''',
    '''CREATE UNIQUE INDEX IF NOT EXISTS uq_student_scores_key
       ON student_scores (student_id, class_id, subject_id, school_session, school_term)''',
    '''CREATE INDEX IF NOT EXISTS ix_student_scores_cohort
       ON student_scores (class_id, subject_id, school_session, school_term)''',
    '''CREATE TABLE IF NOT EXISTS result_summary (
            id SERIAL PRIMARY KEY,
            class_id TEXT NOT NULL,
            class_group TEXT,
            school_session TEXT NOT NULL,
            school_term TEXT NOT NULL,
            school_id TEXT,
            total_students INTEGER NOT NULL DEFAULT 0,
            total_score NUMERIC(12,2) NOT NULL DEFAULT 0,
            average_score NUMERIC(8,2),
            status TEXT NOT NULL DEFAULT 'approved',
            approved_by TEXT,
            approved_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE UNIQUE INDEX IF NOT EXISTS uq_result_summary_scope
       ON result_summary (class_id, COALESCE(class_group, ''), school_session, school_term, COALESCE(school_id, ''))''',
    '''CREATE INDEX IF NOT EXISTS ix_student_classes_class
       ON student_classes (class_id, school_session, status)''',
    '''CREATE INDEX IF NOT EXISTS ix_student_class_subjects_cohort
       ON student_class_subjects (class_id, subject_id, status)''',
]


def _adapt_query(query):
    return query.replace('?', '%s')


def db_execute(cursor, query, params=None):
    """Run one statement, translating store failures into score errors."""
    try:
        if params is None:
            return cursor.execute(_adapt_query(query))
        return cursor.execute(_adapt_query(query), params)
    except psycopg2.errors.UniqueViolation as exc:
        raise Conflict('A record with the same key already exists.') from exc
    except psycopg2.DataError as exc:
        # NumericValueOutOfRange and friends: the value can't be stored as given.
        raise InvalidInput('Value cannot be stored.') from exc
    except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
        # QueryCanceledError (statement timeout) is an OperationalError.
        raise StorageUnavailable() from exc


def sqlalchemy_url():
    """DATABASE_URL spelled the way SQLAlchemy accepts it (no legacy postgres:// scheme)."""
    url = os.environ.get('DATABASE_URL', '').strip() or DATABASE_URL
    if not url:
        raise RuntimeError('DATABASE_URL environment variable not set')
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    return url


def get_db(timeout_ms=None):
    """Create a PostgreSQL DB connection."""
    if not DATABASE_URL.startswith(('postgres://', 'postgresql://')):
        raise RuntimeError("PostgreSQL is required. Set DATABASE_URL to a postgresql:// connection string.")
    statement_timeout = int(timeout_ms or DB_STATEMENT_TIMEOUT_MS)
    try:
        return psycopg2.connect(
            DATABASE_URL,
            cursor_factory=DictCursor,
            connect_timeout=DB_CONNECT_TIMEOUT,
            options=f'-c statement_timeout={statement_timeout}',
        )
    except psycopg2.OperationalError as exc:
        raise StorageUnavailable() from exc


@contextmanager
def db_connection(commit=False, timeout_ms=None):
    """Context manager for one connection; uncommitted work is discarded on close."""
    conn = get_db(timeout_ms=timeout_ms)
    try:
        yield conn
        if commit:
            try:
                conn.commit()
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
                raise StorageUnavailable() from exc
    finally:
        conn.close()


def init_db():
    """Create the score, roster and approval tables if they don't exist."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        for statement in SCHEMA_STATEMENTS:
            db_execute(c, statement)
    logging.info("Database schema ensured (%d statements).", len(SCHEMA_STATEMENTS))


def verify_required_db_guards():
    """Verify the unique indexes that make upserts and approvals race-safe are present."""
    strict = os.environ.get('DB_GUARDS_STRICT', '0').strip().lower() in ('1', 'true', 'yes')
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT indexname
               FROM pg_indexes
               WHERE schemaname = 'public' '''
        )
        present_indexes = {str(row[0]) for row in c.fetchall() if row and row[0]}

    missing_indexes = sorted(REQUIRED_INDEXES - present_indexes)
    if not missing_indexes:
        return []

    message = f"Missing DB guards. indexes={missing_indexes}"
    if strict:
        raise RuntimeError(message)
    logging.warning(message)
    return missing_indexes


if __name__ == "__main__":
    init_db()
    verify_required_db_guards()
