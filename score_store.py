"""Durable storage of student score records.

One row per (student, class, subject, session, term). Rows are never deleted;
removal flips ``status`` to ``inactive`` and a later save for the same key
reactivates the row in place.
"""

from db import db_connection, db_execute
from scoring import SCORE_COMPONENTS

SCORE_COLUMNS = ', '.join(SCORE_COMPONENTS)


def _score_row_to_dict(row):
    record = {
        'id': row['id'],
        'student_id': row['student_id'],
        'class_id': row['class_id'],
        'subject_id': row['subject_id'],
        'school_session': row['school_session'],
        'school_term': row['school_term'],
        'total': row['total'],
        'status': row['status'],
        'date_added': row['date_added'],
    }
    for name in SCORE_COMPONENTS:
        record[name] = row[name]
    return record


def upsert_score(student_id, class_id, subject_id, school_session, school_term, components, total, user_id, timeout_ms=None):
    """Insert or update the record for a natural key in one atomic statement; returns its id."""
    values = [components[name] for name in SCORE_COMPONENTS]
    with db_connection(commit=True, timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''INSERT INTO student_scores
                (student_id, class_id, subject_id, school_session, school_term,
                 {SCORE_COLUMNS}, total, status, added_by, date_added)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, CURRENT_TIMESTAMP)
                ON CONFLICT (student_id, class_id, subject_id, school_session, school_term) DO UPDATE SET
                  assess_1 = excluded.assess_1,
                  assess_2 = excluded.assess_2,
                  test_1 = excluded.test_1,
                  test_2 = excluded.test_2,
                  exam = excluded.exam,
                  total = excluded.total,
                  status = 'active',
                  updated_by = excluded.added_by,
                  date_updated = CURRENT_TIMESTAMP
                RETURNING id''',
            (student_id, class_id, subject_id, school_session, school_term, *values, total, user_id),
        )
        row = c.fetchone()
    return row[0]


def load_score(score_id, timeout_ms=None):
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''SELECT id, student_id, class_id, subject_id, school_session, school_term,
                       {SCORE_COLUMNS}, total, status, date_added
                FROM student_scores
                WHERE id = ?
                LIMIT 1''',
            (score_id,),
        )
        row = c.fetchone()
    return _score_row_to_dict(row) if row else None


def update_score_components(score_id, components, total, user_id, timeout_ms=None):
    """Overwrite the components and total of one record; False when no such id."""
    with db_connection(commit=True, timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''UPDATE student_scores
               SET assess_1 = ?,
                   assess_2 = ?,
                   test_1 = ?,
                   test_2 = ?,
                   exam = ?,
                   total = ?,
                   updated_by = ?,
                   date_updated = CURRENT_TIMESTAMP
               WHERE id = ?''',
            (*[components[name] for name in SCORE_COMPONENTS], total, user_id, score_id),
        )
        return c.rowcount > 0


def deactivate_score(score_id, user_id, timeout_ms=None):
    """Soft-delete one record; False when no such id."""
    with db_connection(commit=True, timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''UPDATE student_scores
               SET status = 'inactive',
                   updated_by = ?,
                   date_updated = CURRENT_TIMESTAMP
               WHERE id = ?''',
            (user_id, score_id),
        )
        return c.rowcount > 0


def load_scores(class_id, subject_id=None, school_session=None, school_term=None, timeout_ms=None):
    """Active scores in a class, tagged with each student's class group.

    Session and term filters are optional; leaving them out spans every
    session/term on record for the class.
    """
    where = ['ss.class_id = ?', "ss.status = 'active'"]
    params = [class_id]
    if subject_id:
        where.append('ss.subject_id = ?')
        params.append(subject_id)
    if school_session:
        where.append('ss.school_session = ?')
        params.append(school_session)
    if school_term:
        where.append('ss.school_term = ?')
        params.append(school_term)
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''SELECT DISTINCT ON (ss.id)
                       ss.id, ss.student_id, ss.class_id, ss.subject_id,
                       ss.school_session, ss.school_term,
                       {', '.join('ss.' + name for name in SCORE_COMPONENTS)},
                       ss.total, ss.status, ss.date_added, sc.class_group
                FROM student_scores ss
                JOIN student_classes sc
                  ON sc.student_id = ss.student_id
                 AND sc.class_id = ss.class_id
                 AND sc.school_session = ss.school_session
                 AND sc.status = 'active'
                WHERE {' AND '.join(where)}
                ORDER BY ss.id, sc.date_added DESC''',
            tuple(params),
        )
        rows = c.fetchall()

    scores = []
    for row in rows:
        record = _score_row_to_dict(row)
        record['class_group'] = row['class_group']
        scores.append(record)
    return scores


def load_cohort_scores(class_id, subject_id, school_session=None, school_term=None, timeout_ms=None):
    """Active scores of one class subject; the aggregation read path."""
    return load_scores(class_id, subject_id, school_session, school_term, timeout_ms=timeout_ms)


def count_scores(student_id, class_id, subject_id, school_session, school_term, active_only=False, timeout_ms=None):
    """Number of rows stored under one natural key (0 or 1 while the unique index holds)."""
    query = '''SELECT COUNT(*)
               FROM student_scores
               WHERE student_id = ?
                 AND class_id = ?
                 AND subject_id = ?
                 AND school_session = ?
                 AND school_term = ?'''
    if active_only:
        query += " AND status = 'active'"
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(c, query, (student_id, class_id, subject_id, school_session, school_term))
        row = c.fetchone()
    return int(row[0] or 0) if row else 0
