"""Read-only lookups against the roster tables owned by school administration.

Teaching assignments, subject enrollments, class-group membership and
form-teacher designations are maintained elsewhere; scoring and approval only
ask whether an active link exists.
"""

from collections import namedtuple

from db import db_connection, db_execute
from score_errors import Forbidden

# Identity of whoever is calling; resolved by the web layer and passed in explicitly.
Caller = namedtuple('Caller', ['id', 'role', 'school'])


def require_teacher(caller):
    if caller is None or not caller.id or caller.role != 'teacher':
        raise Forbidden('Only teachers can perform this action.')
    return caller


def teacher_has_subject_assignment(teacher_id, class_id, subject_id, school_session=None, timeout_ms=None):
    """Check whether a teacher actively teaches a subject in a class.

    With no session the assignment may belong to any session.
    """
    if not (teacher_id and class_id and subject_id):
        return False
    where = ['user_id = ?', 'class_id = ?', 'subject_id = ?', "status = 'active'"]
    params = [teacher_id, class_id, subject_id]
    if school_session:
        where.append('school_session = ?')
        params.append(school_session)
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''SELECT 1
                FROM teacher_class_subjects
                WHERE {' AND '.join(where)}
                LIMIT 1''',
            tuple(params),
        )
        return c.fetchone() is not None


def teacher_has_class_access(teacher_id, class_id, school_session=None, timeout_ms=None):
    """Check whether a teacher teaches any subject in a class."""
    if not (teacher_id and class_id):
        return False
    where = ['user_id = ?', 'class_id = ?', "status = 'active'"]
    params = [teacher_id, class_id]
    if school_session:
        where.append('school_session = ?')
        params.append(school_session)
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''SELECT 1
                FROM teacher_class_subjects
                WHERE {' AND '.join(where)}
                LIMIT 1''',
            tuple(params),
        )
        return c.fetchone() is not None


def student_has_subject_enrollment(student_id, class_id, subject_id, school_session, timeout_ms=None):
    """Check whether a student actively offers a subject in a class for a session."""
    if not (student_id and class_id and subject_id and school_session):
        return False
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT 1
               FROM student_class_subjects
               WHERE student_id = ?
                 AND class_id = ?
                 AND subject_id = ?
                 AND status = 'active'
                 AND school_session = ?
               LIMIT 1''',
            (student_id, class_id, subject_id, school_session),
        )
        return c.fetchone() is not None


def get_student_class(student_id, class_id, school_session=None, timeout_ms=None):
    """Return the student's active membership of a class, or None.

    ``class_group`` in the result may itself be None for ungrouped classes.
    """
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        where = ['student_id = ?', 'class_id = ?', "status = 'active'"]
        params = [student_id, class_id]
        if school_session:
            where.append('school_session = ?')
            params.append(school_session)
        db_execute(
            c,
            f'''SELECT class_id, class_group, school_session
                FROM student_classes
                WHERE {' AND '.join(where)}
                ORDER BY date_added DESC
                LIMIT 1''',
            tuple(params),
        )
        row = c.fetchone()
    if not row:
        return None
    return {
        'class_id': row[0],
        'class_group': row[1],
        'school_session': row[2],
    }


def get_form_teacher_assignment(teacher_id, class_id, school_session, timeout_ms=None):
    """Return the teacher's active form-teacher designation for a class+session, or None."""
    if not (teacher_id and class_id and school_session):
        return None
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT class_group
               FROM form_teachers
               WHERE teacher_id = ?
                 AND class_id = ?
                 AND status = 'active'
                 AND school_session = ?
               ORDER BY date_added DESC
               LIMIT 1''',
            (teacher_id, class_id, school_session),
        )
        row = c.fetchone()
    if not row:
        return None
    return {'class_group': row[0]}


def load_cohort_enrollments(class_id, subject_id, school_session=None, timeout_ms=None):
    """Students offering a subject in a class, with their class group.

    One row per student; without a session filter the latest class membership
    decides the group.
    """
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        where = ['scs.class_id = ?', 'scs.subject_id = ?', "scs.status = 'active'"]
        params = [class_id, subject_id]
        if school_session:
            where.append('scs.school_session = ?')
            where.append('sc.school_session = ?')
            params.extend([school_session, school_session])
        db_execute(
            c,
            f'''SELECT DISTINCT ON (scs.student_id)
                       scs.student_id, sc.class_group, scs.school_session,
                       s.student_no, s.surname, s.firstname, s.othername
                FROM student_class_subjects scs
                JOIN student_classes sc
                  ON sc.student_id = scs.student_id
                 AND sc.class_id = scs.class_id
                 AND sc.status = 'active'
                JOIN students s ON s.id = scs.student_id
                WHERE {' AND '.join(where)}
                ORDER BY scs.student_id, sc.date_added DESC''',
            tuple(params),
        )
        rows = c.fetchall()

    enrollments = []
    for row in rows:
        student_id, class_group, school_session_value, student_no, surname, firstname, othername = row
        enrollments.append({
            'student_id': student_id,
            'class_group': class_group,
            'school_session': school_session_value,
            'student': {
                'id': student_id,
                'student_no': student_no,
                'surname': surname,
                'firstname': firstname,
                'othername': othername,
            },
        })
    enrollments.sort(key=lambda e: ((e['student']['surname'] or '').lower(), (e['student']['firstname'] or '').lower()))
    return enrollments


def load_student_subjects(student_id, class_id, school_session=None, timeout_ms=None):
    """Subjects a student actively offers in a class."""
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        where = ['scs.student_id = ?', 'scs.class_id = ?', "scs.status = 'active'"]
        params = [student_id, class_id]
        if school_session:
            where.append('scs.school_session = ?')
            params.append(school_session)
        db_execute(
            c,
            f'''SELECT DISTINCT s.id, s.name, s.code, s.category
                FROM student_class_subjects scs
                JOIN subjects s ON s.id = scs.subject_id
                WHERE {' AND '.join(where)}
                ORDER BY s.name ASC''',
            tuple(params),
        )
        return [
            {'id': row[0], 'name': row[1], 'code': row[2], 'category': row[3]}
            for row in c.fetchall()
        ]


def load_student(student_id, timeout_ms=None):
    with db_connection(timeout_ms=timeout_ms) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT id, student_no, surname, firstname, othername, school
               FROM students
               WHERE id = ?
               LIMIT 1''',
            (student_id,),
        )
        row = c.fetchone()
    if not row:
        return None
    return {
        'id': row[0],
        'student_no': row[1],
        'surname': row[2],
        'firstname': row[3],
        'othername': row[4],
        'school': row[5],
    }
