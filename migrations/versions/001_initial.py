"""Initial schema for scores, rosters and result approval.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables and indexes for the school results service."""

    # Users with roles: super_admin, school_admin, teacher
    op.execute('''CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    full_name TEXT,
                    user_role TEXT NOT NULL DEFAULT 'teacher',
                    school TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS students (
                    id TEXT PRIMARY KEY,
                    student_no TEXT,
                    surname TEXT NOT NULL,
                    firstname TEXT NOT NULL,
                    othername TEXT,
                    school TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS subjects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    code TEXT,
                    category TEXT
                )''')

    # Roster links (owned by school administration, read by scoring)
    op.execute('''CREATE TABLE IF NOT EXISTS student_classes (
                    id SERIAL PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    class_group TEXT,
                    school_session TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS student_class_subjects (
                    id SERIAL PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    subject_id TEXT NOT NULL,
                    school_session TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS teacher_class_subjects (
                    id SERIAL PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    subject_id TEXT NOT NULL,
                    school_session TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS form_teachers (
                    id SERIAL PRIMARY KEY,
                    teacher_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    class_group TEXT,
                    school_session TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    date_added TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    # One row per (student, class, subject, session, term); term stored as 1st/2nd/3rd
    op.execute('''CREATE TABLE IF NOT EXISTS student_scores (
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
                )''')

    op.execute('''CREATE TABLE IF NOT EXISTS result_summary (
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
                )''')

    # Create indexes
    op.execute('CREATE INDEX IF NOT EXISTS ix_student_scores_cohort ON student_scores(class_id, subject_id, school_session, school_term)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_student_classes_class ON student_classes(class_id, school_session, status)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_student_class_subjects_cohort ON student_class_subjects(class_id, subject_id, status)')

    # Create uniqueness constraints for conflict resolution
    op.execute('''CREATE UNIQUE INDEX IF NOT EXISTS uq_student_scores_key
                  ON student_scores(student_id, class_id, subject_id, school_session, school_term)''')
    op.execute('''CREATE UNIQUE INDEX IF NOT EXISTS uq_result_summary_scope
                  ON result_summary(class_id, COALESCE(class_group, ''), school_session, school_term, COALESCE(school_id, ''))''')


def downgrade() -> None:
    """Drop all tables (destructive)."""
    op.execute('DROP TABLE IF EXISTS result_summary CASCADE')
    op.execute('DROP TABLE IF EXISTS student_scores CASCADE')
    op.execute('DROP TABLE IF EXISTS form_teachers CASCADE')
    op.execute('DROP TABLE IF EXISTS teacher_class_subjects CASCADE')
    op.execute('DROP TABLE IF EXISTS student_class_subjects CASCADE')
    op.execute('DROP TABLE IF EXISTS student_classes CASCADE')
    op.execute('DROP TABLE IF EXISTS subjects CASCADE')
    op.execute('DROP TABLE IF EXISTS students CASCADE')
    op.execute('DROP TABLE IF EXISTS users CASCADE')
