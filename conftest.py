import contextlib
from decimal import Decimal

import pytest

import result_approval
import rosters
import score_store
from scoring import SCORE_COMPONENTS


def _group(value):
    return value or None


class FakeSchool:
    """In-memory stand-in for the roster, score and summary tables."""

    def __init__(self):
        self.students = {}
        self.subjects = {}
        self.student_classes = []
        self.student_subjects = []
        self.teacher_subjects = []
        self.form_teachers = []
        self.scores = {}
        self.summaries = []
        self._next_score_id = 1
        self._clock = 0

    # ---- setup helpers ----

    def add_student(self, student_id, class_id, session, subject_ids=(), class_group=None, surname=None):
        self.students[student_id] = {
            'id': student_id,
            'student_no': student_id.upper(),
            'surname': surname or student_id,
            'firstname': 'Ada',
            'othername': None,
            'school': 'SCH1',
        }
        self.student_classes.append({
            'student_id': student_id, 'class_id': class_id, 'class_group': class_group,
            'school_session': session, 'status': 'active',
        })
        for subject_id in subject_ids:
            self.subjects.setdefault(subject_id, {'id': subject_id, 'name': subject_id.title(), 'code': None, 'category': None})
            self.student_subjects.append({
                'student_id': student_id, 'class_id': class_id, 'subject_id': subject_id,
                'school_session': session, 'status': 'active',
            })

    def assign_teacher(self, teacher_id, class_id, subject_id, session):
        self.teacher_subjects.append({
            'user_id': teacher_id, 'class_id': class_id, 'subject_id': subject_id,
            'school_session': session, 'status': 'active',
        })

    def make_form_teacher(self, teacher_id, class_id, session, class_group=None):
        self.form_teachers.append({
            'teacher_id': teacher_id, 'class_id': class_id, 'class_group': class_group,
            'school_session': session, 'status': 'active',
        })

    def active_scores(self):
        return [s for s in self.scores.values() if s['status'] == 'active']

    # ---- rosters ----

    def teacher_has_subject_assignment(self, teacher_id, class_id, subject_id, school_session=None, timeout_ms=None):
        return any(
            t['user_id'] == teacher_id and t['class_id'] == class_id and t['subject_id'] == subject_id
            and t['status'] == 'active' and (not school_session or t['school_session'] == school_session)
            for t in self.teacher_subjects
        )

    def teacher_has_class_access(self, teacher_id, class_id, school_session=None, timeout_ms=None):
        return any(
            t['user_id'] == teacher_id and t['class_id'] == class_id and t['status'] == 'active'
            and (not school_session or t['school_session'] == school_session)
            for t in self.teacher_subjects
        )

    def student_has_subject_enrollment(self, student_id, class_id, subject_id, school_session, timeout_ms=None):
        return any(
            e['student_id'] == student_id and e['class_id'] == class_id and e['subject_id'] == subject_id
            and e['status'] == 'active' and e['school_session'] == school_session
            for e in self.student_subjects
        )

    def get_student_class(self, student_id, class_id, school_session=None, timeout_ms=None):
        for sc in reversed(self.student_classes):
            if (sc['student_id'] == student_id and sc['class_id'] == class_id and sc['status'] == 'active'
                    and (not school_session or sc['school_session'] == school_session)):
                return {'class_id': class_id, 'class_group': sc['class_group'], 'school_session': sc['school_session']}
        return None

    def get_form_teacher_assignment(self, teacher_id, class_id, school_session, timeout_ms=None):
        for ft in self.form_teachers:
            if (ft['teacher_id'] == teacher_id and ft['class_id'] == class_id and ft['status'] == 'active'
                    and ft['school_session'] == school_session):
                return {'class_group': ft['class_group']}
        return None

    def load_cohort_enrollments(self, class_id, subject_id, school_session=None, timeout_ms=None):
        rows = {}
        for e in self.student_subjects:
            if e['class_id'] != class_id or e['subject_id'] != subject_id or e['status'] != 'active':
                continue
            if school_session and e['school_session'] != school_session:
                continue
            sc = self.get_student_class(e['student_id'], class_id, school_session)
            if sc is None:
                continue
            rows[e['student_id']] = {
                'student_id': e['student_id'],
                'class_group': sc['class_group'],
                'school_session': e['school_session'],
                'student': dict(self.students[e['student_id']]),
            }
        return sorted(rows.values(), key=lambda r: r['student']['surname'])

    def load_student_subjects(self, student_id, class_id, school_session=None, timeout_ms=None):
        ids = sorted({
            e['subject_id'] for e in self.student_subjects
            if e['student_id'] == student_id and e['class_id'] == class_id and e['status'] == 'active'
            and (not school_session or e['school_session'] == school_session)
        })
        return [dict(self.subjects[i]) for i in ids]

    def load_student(self, student_id, timeout_ms=None):
        student = self.students.get(student_id)
        return dict(student) if student else None

    # ---- score store ----

    def upsert_score(self, student_id, class_id, subject_id, school_session, school_term, components, total, user_id, timeout_ms=None):
        self._clock += 1
        key = (student_id, class_id, subject_id, school_session, school_term)
        for record in self.scores.values():
            if (record['student_id'], record['class_id'], record['subject_id'],
                    record['school_session'], record['school_term']) == key:
                record.update(components)
                record['total'] = total
                record['status'] = 'active'
                return record['id']
        score_id = self._next_score_id
        self._next_score_id += 1
        record = {
            'id': score_id,
            'student_id': student_id,
            'class_id': class_id,
            'subject_id': subject_id,
            'school_session': school_session,
            'school_term': school_term,
            'total': total,
            'status': 'active',
            'date_added': self._clock,
        }
        record.update({name: components.get(name) for name in SCORE_COMPONENTS})
        self.scores[score_id] = record
        return score_id

    def load_score(self, score_id, timeout_ms=None):
        record = self.scores.get(score_id)
        return dict(record) if record else None

    def update_score_components(self, score_id, components, total, user_id, timeout_ms=None):
        record = self.scores.get(score_id)
        if not record:
            return False
        record.update(components)
        record['total'] = total
        return True

    def deactivate_score(self, score_id, user_id, timeout_ms=None):
        record = self.scores.get(score_id)
        if not record:
            return False
        record['status'] = 'inactive'
        return True

    def load_scores(self, class_id, subject_id=None, school_session=None, school_term=None, timeout_ms=None):
        out = []
        for record in self.active_scores():
            if record['class_id'] != class_id:
                continue
            if subject_id and record['subject_id'] != subject_id:
                continue
            if school_session and record['school_session'] != school_session:
                continue
            if school_term and record['school_term'] != school_term:
                continue
            sc = self.get_student_class(record['student_id'], class_id, record['school_session'])
            if sc is None:
                continue
            out.append(dict(record, class_group=sc['class_group']))
        return out

    # ---- result summary ----

    def _find_summary(self, class_id, class_group, school_session, school_term, school_id):
        for summary in self.summaries:
            if (summary['class_id'] == class_id and _group(summary['class_group']) == _group(class_group)
                    and summary['school_session'] == school_session and summary['school_term'] == school_term
                    and summary['school_id'] == school_id):
                return summary
        return None

    def is_scope_approved(self, class_id, class_group, school_session, school_term, school_id, timeout_ms=None):
        return self._find_summary(class_id, class_group, school_session, school_term, school_id) is not None

    def scope_approved_with_cursor(self, c, class_id, class_group, school_session, school_term, school_id):
        return self.is_scope_approved(class_id, class_group, school_session, school_term, school_id)

    def summarize_scope_with_cursor(self, c, class_id, class_group, school_session, school_term):
        enrolled = {
            sc['student_id'] for sc in self.student_classes
            if sc['class_id'] == class_id and sc['status'] == 'active'
            and _group(sc['class_group']) == _group(class_group) and sc['school_session'] == school_session
        }
        totals = [
            Decimal(s['total']) for s in self.active_scores()
            if s['student_id'] in enrolled and s['class_id'] == class_id
            and s['school_session'] == school_session and s['school_term'] == school_term
        ]
        return {
            'total_students': len(enrolled),
            'total_score': sum(totals, Decimal('0')),
            'average_score': (sum(totals) / len(totals)) if totals else None,
        }

    def insert_summary_with_cursor(self, c, class_id, class_group, school_session, school_term, school_id, totals, approved_by):
        if self._find_summary(class_id, class_group, school_session, school_term, school_id):
            return False
        self.summaries.append(dict(
            totals,
            class_id=class_id,
            class_group=class_group,
            school_session=school_session,
            school_term=school_term,
            school_id=school_id,
            status='approved',
            approved_by=approved_by,
        ))
        return True

    # ---- wiring ----

    def install(self, monkeypatch):
        for name in (
            'teacher_has_subject_assignment', 'teacher_has_class_access', 'student_has_subject_enrollment',
            'get_student_class', 'get_form_teacher_assignment', 'load_cohort_enrollments',
            'load_student_subjects', 'load_student',
        ):
            monkeypatch.setattr(rosters, name, getattr(self, name))
        for name in ('upsert_score', 'load_score', 'update_score_components', 'deactivate_score', 'load_scores'):
            monkeypatch.setattr(score_store, name, getattr(self, name))

        @contextlib.contextmanager
        def fake_db_connection(commit=False, timeout_ms=None):
            yield FakeConn()

        monkeypatch.setattr(result_approval, 'db_connection', fake_db_connection)
        monkeypatch.setattr(result_approval, 'is_scope_approved', self.is_scope_approved)
        monkeypatch.setattr(result_approval, '_scope_approved_with_cursor', self.scope_approved_with_cursor)
        monkeypatch.setattr(result_approval, 'summarize_scope_with_cursor', self.summarize_scope_with_cursor)
        monkeypatch.setattr(result_approval, 'insert_summary_with_cursor', self.insert_summary_with_cursor)
        return self


class FakeConn:
    def cursor(self):
        return None


@pytest.fixture
def school(monkeypatch):
    return FakeSchool().install(monkeypatch)
