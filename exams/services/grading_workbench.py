"""
Grading workbench: the admin side of scoring.

Lists submitted attempts, shows an attempt answer by answer, applies manual
scores and recomputes submission totals from what is stored, so two graders
saving the same submission never work from a stale snapshot.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.utils import timezone

from exams.exceptions import ValidationError
from exams.gateway import DataGateway
from exams.grading import ScoringEngine, score_and_save
from exams.grading.scoring import load_for_scoring, save_totals
from exams.identity import require_admin
from exams.models import Answer, AuditLog

logger = logging.getLogger(__name__)


class GradingWorkbench:
    FILTER_ALL = 'all'
    FILTER_GRADED = 'graded'
    FILTER_UNGRADED = 'ungraded'
    FILTERS = (FILTER_ALL, FILTER_GRADED, FILTER_UNGRADED)

    def __init__(self, user, gateway=None, request=None, engine=None):
        self.user = user
        self.gateway = gateway or DataGateway()
        self.request = request
        self.engine = engine or ScoringEngine()

    def _require_admin(self, action):
        require_admin(self.user, request=self.request, action=action)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_submissions(self, filter=FILTER_ALL):
        self._require_admin('list_submissions')
        if filter not in self.FILTERS:
            raise ValidationError(f"Unknown filter '{filter}'. Use one of: {', '.join(self.FILTERS)}.")

        criteria = {'is_submitted': True}
        if filter == self.FILTER_GRADED:
            criteria['is_graded'] = True
        elif filter == self.FILTER_UNGRADED:
            criteria['is_graded'] = False

        return self.gateway.get(
            'submissions', criteria,
            order=('-submitted_at', '-id'),
            select_related=('student', 'student__profile', 'exam')
        )

    def load_submission_detail(self, submission_id):
        """
        The submission plus its answers in question order, with each answer's
        question and options loaded for display.
        """
        self._require_admin('load_submission_detail')
        submission = self.gateway.get_one(
            'submissions', {'pk': submission_id},
            select_related=('student', 'student__profile', 'exam')
        )
        answers = self.gateway.get(
            'answers', {'submission_id': submission.id},
            order=('question__order_index', 'question_id'),
            select_related=('question', 'selected_option'),
            prefetch_related=('question__options',)
        )
        return submission, answers

    def summary(self):
        self._require_admin('summary')
        return {
            'total_students': self.gateway.count('profiles', {'is_admin': False}),
            'total_exams': self.gateway.count('exams'),
            'active_exams': self.gateway.count('exams', {'is_active': True}),
            'pending_grading': self.gateway.count('submissions', {'is_submitted': True, 'is_graded': False}),
        }

    def list_students(self):
        self._require_admin('list_students')
        return self.gateway.get(
            'profiles', {'is_admin': False, 'user__is_staff': False},
            order=('-created_at',), select_related=('user',)
        )

    # =========================================================================
    # GRADING
    # =========================================================================

    def set_answer_grade(self, answer_id, points_earned, feedback=None):
        """Score one answer by hand. Out-of-range points are rejected, never clamped."""
        self._require_admin('set_answer_grade')
        with self.gateway.atomic():
            answer = self._load_gradable_answer(answer_id)
            self._apply_grade(answer, self._validate_points(answer, points_earned), feedback)
        return self.gateway.get_one('answers', {'pk': answer_id}, select_related=('question',))

    def set_answer_grades(self, submission_id, grades):
        """
        Apply a batch of ``{'answer_id', 'points_earned', 'feedback'}`` grades
        to one submission and recompute its totals. All or nothing.
        """
        self._require_admin('set_answer_grades')
        with self.gateway.atomic():
            submission = self.gateway.get_one('submissions', {'pk': submission_id}, for_update=True)
            if not submission.is_submitted:
                raise ValidationError("Only submitted attempts can be graded.")

            answers = {
                answer.id: answer
                for answer in self.gateway.get(
                    'answers', {'submission_id': submission.id}, select_related=('question', 'submission')
                )
            }
            validated = []
            for grade in grades:
                answer = answers.get(grade.get('answer_id'))
                if answer is None:
                    raise ValidationError(f"Answer {grade.get('answer_id')} does not belong to submission {submission_id}.")
                validated.append((answer, self._validate_points(answer, grade.get('points_earned')), grade.get('feedback')))

            for answer, points, feedback in validated:
                self._apply_grade(answer, points, feedback)

            return self._recompute(submission.id)

    def recompute_submission_totals(self, submission_id):
        self._require_admin('recompute_submission_totals')
        with self.gateway.atomic():
            return self._recompute(submission_id)

    def rescore_submission(self, submission_id):
        """Re-run automatic scoring. Scores set by a grader are kept."""
        self._require_admin('rescore_submission')
        submission = self.gateway.get_one('submissions', {'pk': submission_id})
        if not submission.is_submitted:
            raise ValidationError("Only submitted attempts can be scored.")
        return score_and_save(submission.id, gateway=self.gateway, engine=self.engine)

    def delete_submission(self, submission_id):
        self._require_admin('delete_submission')
        submission = self.gateway.get_one('submissions', {'pk': submission_id}, select_related=('student', 'exam'))
        self.gateway.delete('submissions', submission.id)
        AuditLog.log(
            event_type=AuditLog.EventType.SUBMISSION_DELETED,
            description=f"Deleted submission of {submission.student.username} for {submission.exam.title}",
            request=self.request,
            user=self.user,
            metadata={'submission_id': submission_id, 'exam_id': submission.exam_id}
        )
        logger.info(f"Submission {submission_id} deleted by user {self.user.id}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _recompute(self, submission_id):
        # always from stored answer scores; another grader may have saved since we loaded
        submission, questions, answers = load_for_scoring(self.gateway, submission_id, lock=True)
        if not submission.is_submitted:
            raise ValidationError("Only submitted attempts can be graded.")
        scored = self.engine.tally(submission, answers, questions)
        save_totals(self.gateway, scored)
        logger.info(
            f"Recomputed submission {submission_id}: {scored.total_score}/{scored.max_score}, "
            f"graded={scored.is_graded}"
        )
        return scored

    def _load_gradable_answer(self, answer_id):
        answer = self.gateway.get_one(
            'answers', {'pk': answer_id}, select_related=('question', 'submission'), for_update=True
        )
        if not answer.submission.is_submitted:
            raise ValidationError("Only submitted attempts can be graded.")
        return answer

    def _validate_points(self, answer, points_earned):
        if points_earned is None or isinstance(points_earned, bool):
            raise ValidationError("points_earned is required.")
        try:
            points = Decimal(str(points_earned))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid points value: {points_earned!r}.")
        if not points.is_finite() or points < 0 or points > answer.question.points:
            raise ValidationError(
                f"Points for question {answer.question_id} must be between 0 and {answer.question.points}."
            )
        return points

    def _apply_grade(self, answer, points, feedback):
        old_points = answer.points_earned
        patch = {
            'points_earned': points,
            'grading_method': Answer.GradingMethod.MANUAL,
            'graded_by_id': self.user.id,
            'graded_at': timezone.now(),
        }
        if answer.question.is_objective:
            patch['is_correct'] = points == answer.question.points
        if feedback is not None:
            patch['feedback'] = feedback
        self.gateway.update('answers', answer.id, patch)

        AuditLog.log(
            event_type=AuditLog.EventType.GRADE_UPDATED,
            description=f"Manual grade: {old_points} -> {points}",
            request=self.request,
            user=self.user,
            metadata={'answer_id': answer.id, 'submission_id': answer.submission_id}
        )
