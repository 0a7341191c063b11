from django.db import models
from django.contrib.auth.models import User
from django.utils import timezone


class Submission(models.Model):
    class GradingState(models.TextChoices):
        UNGRADED = 'ungraded', 'Ungraded'
        PARTIALLY_GRADED = 'partially_graded', 'Partially Graded'
        FULLY_GRADED = 'fully_graded', 'Fully Graded'

    student = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='submissions',
        db_index=True
    )
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='submissions',
        db_index=True
    )

    started_at = models.DateTimeField(default=timezone.now)
    submitted_at = models.DateTimeField(null=True, blank=True)
    graded_at = models.DateTimeField(null=True, blank=True)
    is_submitted = models.BooleanField(default=False, db_index=True)
    time_taken_minutes = models.PositiveIntegerField(null=True, blank=True)

    total_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    max_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    is_graded = models.BooleanField(default=False, db_index=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['student', 'exam']),
            models.Index(fields=['exam', 'is_submitted']),
            models.Index(fields=['is_submitted', 'is_graded']),
            models.Index(fields=['submitted_at']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'exam'],
                name='unique_student_exam_submission'
            )
        ]

    def __str__(self):
        return f"{self.student.username} - {self.exam.title}"

    @property
    def deadline(self):
        return self.started_at + timezone.timedelta(minutes=self.exam.duration_minutes)

    @property
    def grading_state(self):
        if self.is_graded:
            return self.GradingState.FULLY_GRADED
        if self.answers.filter(points_earned__isnull=False).exists():
            return self.GradingState.PARTIALLY_GRADED
        return self.GradingState.UNGRADED
