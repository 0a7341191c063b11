"""
Student-side views of exams and results: the exams a student can take right
now and the grades of the exams they have submitted.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from exams.exceptions import NotFound
from exams.models import Exam, Submission

logger = logging.getLogger(__name__)

LETTER_GRADES = (
    (Decimal(90), 'A'),
    (Decimal(80), 'B'),
    (Decimal(70), 'C'),
    (Decimal(60), 'D'),
)


def pass_percentage():
    return Decimal(str(getattr(settings, 'EXAM_SESSION', {}).get('PASS_PERCENTAGE', 70)))


def letter_grade(percentage) -> str:
    percentage = Decimal(str(percentage))
    for threshold, letter in LETTER_GRADES:
        if percentage >= threshold:
            return letter
    return 'F'


@dataclass
class GradeEntry:
    submission: Submission
    letter: str
    passed: bool
    can_review: bool

    @property
    def is_final(self):
        return self.submission.is_graded


class Gradebook:
    """Read-only results for one student."""

    def __init__(self, student):
        self.student = student

    def available_exams(self, now=None):
        """Active exams inside their window, visible to the student and not yet submitted."""
        now = now or timezone.now()
        submitted = Submission.objects.filter(
            student=self.student, is_submitted=True
        ).values('exam_id')

        return (
            Exam.objects.filter(is_active=True)
            .filter(Q(start_date__isnull=True) | Q(start_date__lte=now))
            .filter(Q(end_date__isnull=True) | Q(end_date__gte=now))
            .filter(Q(visibility=Exam.Visibility.ALL) | Q(assigned_students=self.student))
            .exclude(id__in=submitted)
            .distinct()
            .order_by('start_date', '-created_at')
        )

    def submissions(self):
        return (
            Submission.objects.filter(student=self.student, is_submitted=True)
            .select_related('exam')
            .order_by('-submitted_at')
        )

    def grades(self):
        threshold = pass_percentage()
        entries = []
        for submission in self.submissions():
            graded = submission.is_graded
            entries.append(GradeEntry(
                submission=submission,
                letter=letter_grade(submission.percentage) if graded else '',
                passed=graded and submission.percentage >= threshold,
                can_review=graded and submission.exam.allow_review,
            ))
        return entries

    def review(self, submission_id):
        """
        The student's own graded submission and its answers, as
        ``(submission, answers)``. Returns ``None`` when the exam does not
        allow review or grading is not finished.
        """
        try:
            submission = Submission.objects.select_related('exam').get(
                pk=submission_id, student=self.student, is_submitted=True
            )
        except Submission.DoesNotExist:
            raise NotFound("Submission not found.")
        if not (submission.is_graded and submission.exam.allow_review):
            logger.info(f"Review of submission {submission_id} refused for student {self.student.id}")
            return None
        answers = (
            submission.answers.select_related('question', 'selected_option')
            .prefetch_related('question__options')
            .order_by('question__order_index', 'question_id')
        )
        return submission, list(answers)
