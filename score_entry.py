"""Writing, correcting and removing one student's subject scores."""

import logging
import os

import result_approval
import rosters
import score_store
from score_errors import Conflict, Forbidden, InvalidInput, NotFound
from scoring import compute_total, normalize_term, parse_components, term_label

# Scores of a class whose term results are approved are read-only.
ENFORCE_APPROVAL_LOCK = os.environ.get('ENFORCE_APPROVAL_LOCK', '1').strip().lower() in ('1', 'true', 'yes')


def _clean(value):
    return str(value if value is not None else '').strip()


def parse_score_id(score_id):
    try:
        parsed = int(_clean(score_id))
    except ValueError:
        raise InvalidInput('Score id is required.') from None
    if parsed <= 0:
        raise InvalidInput('Score id is required.')
    return parsed


def ensure_scope_unlocked(student_id, class_id, school_session, school_term, school_id=None, timeout_ms=None):
    """Raise Conflict when the student's class results for the term are already approved.

    Without a school the student's own school is used.
    """
    if not ENFORCE_APPROVAL_LOCK:
        return
    if not school_id:
        student = rosters.load_student(student_id, timeout_ms=timeout_ms)
        school_id = student['school'] if student else None
    class_info = rosters.get_student_class(student_id, class_id, school_session, timeout_ms=timeout_ms)
    class_group = class_info['class_group'] if class_info else None
    if result_approval.is_scope_approved(
        class_id, class_group, school_session, school_term, school_id, timeout_ms=timeout_ms
    ):
        raise Conflict(
            f'Results for this class ({school_session}, {term_label(school_term)}) are approved and locked.'
        )


def save_score(caller, student_id, class_id, subject_id, school_session, school_term, components, timeout_ms=None):
    """Create or update the score for one (student, class, subject, session, term)."""
    rosters.require_teacher(caller)
    student_id = _clean(student_id)
    class_id = _clean(class_id)
    subject_id = _clean(subject_id)
    school_session = _clean(school_session)
    if not (student_id and class_id and subject_id and school_session and _clean(school_term)):
        raise InvalidInput('Student, class, subject, session, and term are required.')
    term = normalize_term(school_term)

    if not rosters.teacher_has_subject_assignment(
        caller.id, class_id, subject_id, school_session, timeout_ms=timeout_ms
    ):
        raise Forbidden('You are not assigned to this class subject for the session.')
    if not rosters.student_has_subject_enrollment(
        student_id, class_id, subject_id, school_session, timeout_ms=timeout_ms
    ):
        raise NotFound('Student subject not found.')

    parsed = parse_components(components)
    total = compute_total(parsed)
    ensure_scope_unlocked(student_id, class_id, school_session, term, caller.school, timeout_ms=timeout_ms)

    score_id = score_store.upsert_score(
        student_id, class_id, subject_id, school_session, term, parsed, total, caller.id, timeout_ms=timeout_ms
    )
    logging.info(
        "Score %s saved by %s: student=%s class=%s subject=%s %s %s total=%s",
        score_id, caller.id, student_id, class_id, subject_id, school_session, term, total,
    )
    return {'score_id': score_id}


def _load_for_change(score_id, caller, timeout_ms):
    record = score_store.load_score(score_id, timeout_ms=timeout_ms)
    if not record:
        raise NotFound('Score not found.')
    if caller is not None:
        rosters.require_teacher(caller)
        if not rosters.teacher_has_subject_assignment(
            caller.id, record['class_id'], record['subject_id'], record['school_session'], timeout_ms=timeout_ms
        ):
            raise Forbidden('You are not assigned to this class subject for the session.')
    ensure_scope_unlocked(
        record['student_id'], record['class_id'], record['school_session'], record['school_term'],
        caller.school if caller else None,
        timeout_ms=timeout_ms,
    )
    return record


def update_score(score_id, components, caller=None, timeout_ms=None):
    """Overwrite the components of an existing record by id.

    The service does not re-check the class/subject assignment unless a
    caller is given; the web layer always passes one. The approval lock
    applies either way.
    """
    score_id = parse_score_id(score_id)
    parsed = parse_components(components)
    total = compute_total(parsed)
    _load_for_change(score_id, caller, timeout_ms)

    if not score_store.update_score_components(
        score_id, parsed, total, caller.id if caller else None, timeout_ms=timeout_ms
    ):
        raise NotFound('Score not found.')
    logging.info("Score %s updated: total=%s", score_id, total)
    return {'score_id': score_id, 'total': total}


def remove_score(score_id, caller=None, timeout_ms=None):
    """Soft-delete a record; removing an already inactive record still succeeds."""
    score_id = parse_score_id(score_id)
    _load_for_change(score_id, caller, timeout_ms)

    if not score_store.deactivate_score(score_id, caller.id if caller else None, timeout_ms=timeout_ms):
        raise NotFound('Score not found.')
    logging.info("Score %s removed", score_id)
    return {'score_id': score_id}
