"""Approval of a class's term results by its form teacher.

A scope (class, class group, session, term, school) is open until a
``result_summary`` row exists for it, and approved from then on. There is no
way back: approval snapshots the cohort figures once and is never updated.
"""

import logging
from datetime import datetime

import rosters
from db import db_connection, db_execute
from score_errors import Conflict, Forbidden, InvalidInput
from scoring import normalize_term

SCOPE_WHERE = '''class_id = ?
                 AND class_group IS NOT DISTINCT FROM ?
                 AND school_session = ?
                 AND school_term = ?
                 AND school_id IS NOT DISTINCT FROM ?
                 AND status = 'approved' '''


def _require_scope(class_id, school_session, school_term):
    class_id = str(class_id or '').strip()
    school_session = str(school_session or '').strip()
    if not class_id or not school_session or not str(school_term or '').strip():
        raise InvalidInput('Class, session, and term are required.')
    return class_id, school_session, normalize_term(school_term)


def _scope_approved_with_cursor(c, class_id, class_group, school_session, school_term, school_id):
    db_execute(
        c,
        f'''SELECT 1
            FROM result_summary
            WHERE {SCOPE_WHERE}
            LIMIT 1''',
        (class_id, class_group, school_session, school_term, school_id),
    )
    return c.fetchone() is not None


def is_scope_approved(class_id, class_group, school_session, school_term, school_id, timeout_ms=None):
    with db_connection(timeout_ms=timeout_ms) as conn:
        return _scope_approved_with_cursor(conn.cursor(), class_id, class_group, school_session, school_term, school_id)


def summarize_scope_with_cursor(c, class_id, class_group, school_session, school_term):
    """Enrolled-student count plus sum and mean of score totals for a scope.

    Unscored students count toward ``total_students`` but not toward the
    average; with nothing scored the average is None.
    """
    db_execute(
        c,
        '''SELECT COUNT(DISTINCT sc.student_id) AS total_students,
                  COALESCE(SUM(ss.total), 0) AS total_score,
                  AVG(ss.total) AS average_score
           FROM student_classes sc
           LEFT JOIN student_scores ss
             ON ss.student_id = sc.student_id
            AND ss.class_id = sc.class_id
            AND ss.status = 'active'
            AND ss.school_session = sc.school_session
            AND ss.school_term = ?
           WHERE sc.class_id = ?
             AND sc.status = 'active'
             AND sc.class_group IS NOT DISTINCT FROM ?
             AND sc.school_session = ?''',
        (school_term, class_id, class_group, school_session),
    )
    row = c.fetchone()
    if not row:
        return {'total_students': 0, 'total_score': 0, 'average_score': None}
    return {
        'total_students': int(row[0] or 0),
        'total_score': row[1] if row[1] is not None else 0,
        'average_score': row[2],
    }


def insert_summary_with_cursor(c, class_id, class_group, school_session, school_term, school_id, totals, approved_by):
    """Insert the approved snapshot; False when the scope already has one."""
    db_execute(
        c,
        '''INSERT INTO result_summary
           (class_id, class_group, school_session, school_term, school_id,
            total_students, total_score, average_score, status, approved_by, approved_at, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'approved', ?, ?, CURRENT_TIMESTAMP)
           ON CONFLICT DO NOTHING
           RETURNING id''',
        (
            class_id,
            class_group,
            school_session,
            school_term,
            school_id,
            totals['total_students'],
            totals['total_score'],
            totals['average_score'],
            approved_by,
            datetime.now(),
        ),
    )
    return c.fetchone() is not None


def check_approval(class_id, school_session, school_term, caller, timeout_ms=None):
    """Report whether the scope is approved and whether the caller may approve it."""
    class_id, school_session, term = _require_scope(class_id, school_session, school_term)
    rosters.require_teacher(caller)
    assignment = rosters.get_form_teacher_assignment(caller.id, class_id, school_session, timeout_ms=timeout_ms)
    class_group = assignment['class_group'] if assignment else None
    approved = is_scope_approved(class_id, class_group, school_session, term, caller.school, timeout_ms=timeout_ms)
    return {
        'approved': approved,
        'can_approve': assignment is not None,
        'class_group': class_group,
    }


def approve(class_id, school_session, school_term, caller, timeout_ms=None):
    """Approve a class's term results; approving an approved scope is a no-op."""
    class_id, school_session, term = _require_scope(class_id, school_session, school_term)
    rosters.require_teacher(caller)
    assignment = rosters.get_form_teacher_assignment(caller.id, class_id, school_session, timeout_ms=timeout_ms)
    if assignment is None:
        raise Forbidden('Only the form teacher can approve results.')
    class_group = assignment['class_group']

    try:
        # Check, aggregate and insert in one transaction.
        with db_connection(commit=True, timeout_ms=timeout_ms) as conn:
            c = conn.cursor()
            if _scope_approved_with_cursor(c, class_id, class_group, school_session, term, caller.school):
                return {'approved': True}
            totals = summarize_scope_with_cursor(c, class_id, class_group, school_session, term)
            inserted = insert_summary_with_cursor(
                c, class_id, class_group, school_session, term, caller.school, totals, caller.id
            )
    except Conflict:
        # A concurrent approve for the same scope won the insert.
        return {'approved': True}

    if inserted:
        logging.info(
            "Results approved by %s: class=%s group=%s %s %s students=%s average=%s",
            caller.id, class_id, class_group, school_session, term,
            totals['total_students'], totals['average_score'],
        )
    return {'approved': True}
