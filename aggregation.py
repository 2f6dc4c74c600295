"""Cohort totals, averages and dense-rank positions.

A cohort is every score sharing a class, subject, session, term and class
group. The math below works on plain row dicts and is recomputed on every
read; ``get_cohort_view`` and ``get_student_score_sheet`` load the rows.
"""

from decimal import Decimal

import rosters
import score_store
from score_errors import Forbidden, InvalidInput, NotFound
from scoring import SCORE_COMPONENTS, normalize_term


def same_group(a, b):
    """Null-safe class group comparison: two missing groups match."""
    return (a or None) == (b or None)


def select_cohort(records, class_group):
    return [r for r in records if same_group(r.get('class_group'), class_group)]


def cohort_size(enrollments):
    """Distinct students offering the subject, scored or not."""
    return len({e['student_id'] for e in enrollments})


def cohort_average(scores):
    """Mean total over scored records; None when nothing is scored."""
    totals = [Decimal(str(s['total'])) for s in scores if s.get('total') is not None]
    if not totals:
        return None
    return sum(totals) / len(totals)


def dense_rank(totals):
    """Map each distinct total to its dense rank, highest first."""
    distinct = sorted({t for t in totals if t is not None}, reverse=True)
    return {value: position for position, value in enumerate(distinct, 1)}


def _recency(record):
    return (record.get('date_added') is not None, record.get('date_added') or 0, record['id'])


def latest_score(scores, student_id):
    """The student's most recent record among ``scores``, or None."""
    own = [s for s in scores if s['student_id'] == student_id]
    if not own:
        return None
    return max(own, key=_recency)


def same_sitting(a, b):
    return a.get('school_session') == b.get('school_session') and a.get('school_term') == b.get('school_term')


def anchor_cohort(scores, record):
    """Records sitting in the same session and term as ``record``.

    A student has at most one record per sitting, so the result holds one
    record per scored student. Without a record (an unscored student) the
    most recent sitting in ``scores`` is used.
    """
    anchor = record or (max(scores, key=_recency) if scores else None)
    if anchor is None:
        return []
    return [s for s in scores if same_sitting(s, anchor)]


def rank(scores, student_id):
    """Dense-rank position of a student's total in the cohort; None if unscored."""
    record = latest_score(scores, student_id)
    if record is None or record.get('total') is None:
        return None
    return dense_rank([s.get('total') for s in scores]).get(record['total'])


def summarize_student(enrollments, scores, student_id, class_group):
    """The four derived values for one student measured against their own group.

    ``scores`` may span several sessions or terms; ranking and average only
    use the sitting of the record shown.
    """
    group_scores = select_cohort(scores, class_group)
    record = latest_score(group_scores, student_id)
    cohort = anchor_cohort(group_scores, record)
    return {
        'record': record,
        'total': record['total'] if record else None,
        'total_students': cohort_size(select_cohort(enrollments, class_group)),
        'avg_total': cohort_average(cohort),
        'position': rank(cohort, student_id),
    }


def _score_fields(record):
    record = record or {}
    fields = {name: record.get(name) for name in SCORE_COMPONENTS}
    fields['score_id'] = record.get('id')
    fields['school_session'] = record.get('school_session')
    fields['school_term'] = record.get('school_term')
    return fields


def build_cohort_view(enrollments, scores):
    """One row per enrolled student with total, cohort size, average and position."""
    rows = []
    for enrollment in enrollments:
        summary = summarize_student(enrollments, scores, enrollment['student_id'], enrollment.get('class_group'))
        row = {
            'student': enrollment.get('student') or {'id': enrollment['student_id']},
            'class_group': enrollment.get('class_group'),
            'total': summary['total'],
            'total_students': summary['total_students'],
            'avg_total': summary['avg_total'],
            'position': summary['position'],
        }
        row.update(_score_fields(summary['record']))
        rows.append(row)
    return rows


def get_cohort_view(class_id, subject_id, school_session=None, school_term=None, caller=None, timeout_ms=None):
    """Every student offering a subject in a class, ranked within their class group.

    Leaving out session and term spans all of them: each student shows their
    most recent record and is ranked among the records of that same sitting.
    """
    if not class_id or not subject_id:
        raise InvalidInput('Class id and subject id are required.')
    term = normalize_term(school_term, required=False)
    if caller is not None:
        rosters.require_teacher(caller)
        if not rosters.teacher_has_subject_assignment(
            caller.id, class_id, subject_id, school_session, timeout_ms=timeout_ms
        ):
            raise Forbidden('You are not assigned to this class subject.')
    enrollments = rosters.load_cohort_enrollments(class_id, subject_id, school_session, timeout_ms=timeout_ms)
    scores = score_store.load_cohort_scores(class_id, subject_id, school_session, term, timeout_ms=timeout_ms)
    return build_cohort_view(enrollments, scores)


def get_student_score_sheet(student_id, class_id, school_session=None, school_term=None, caller=None, timeout_ms=None):
    """One student's subjects in a class, each with its cohort total, average and position."""
    if not student_id or not class_id:
        raise InvalidInput('Student id and class id are required.')
    term = normalize_term(school_term, required=False)
    if caller is not None:
        rosters.require_teacher(caller)
        if not rosters.teacher_has_class_access(caller.id, class_id, timeout_ms=timeout_ms):
            raise Forbidden('Not allowed to view this class.')

    student = rosters.load_student(student_id, timeout_ms=timeout_ms)
    if not student:
        raise NotFound('Student not found.')
    class_info = rosters.get_student_class(student_id, class_id, school_session, timeout_ms=timeout_ms)
    if not class_info:
        raise NotFound('Student class not found.')
    session = school_session or class_info['school_session']
    class_group = class_info['class_group']

    class_scores = score_store.load_scores(class_id, None, session, term, timeout_ms=timeout_ms)
    subjects_all = []
    for subject in rosters.load_student_subjects(student_id, class_id, session, timeout_ms=timeout_ms):
        enrollments = rosters.load_cohort_enrollments(class_id, subject['id'], session, timeout_ms=timeout_ms)
        subject_scores = [s for s in class_scores if s['subject_id'] == subject['id']]
        summary = summarize_student(enrollments, subject_scores, student_id, class_group)
        row = dict(subject)
        row.update({
            'total': summary['total'],
            'total_students': summary['total_students'],
            'avg_total': summary['avg_total'],
            'position': summary['position'],
        })
        row.update(_score_fields(summary['record']))
        subjects_all.append(row)

    return {
        'student': student,
        'class_info': dict(class_info, school_session=session, school_term=term),
        'subjects': [s for s in subjects_all if s['score_id'] is not None],
        'subjects_all': subjects_all,
    }
