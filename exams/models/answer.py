from django.db import models
from django.contrib.auth.models import User


class Answer(models.Model):
    class GradingMethod(models.TextChoices):
        AUTO = 'auto', 'Automatic'
        MANUAL = 'manual', 'Manual Review'

    submission = models.ForeignKey(
        'Submission',
        on_delete=models.CASCADE,
        related_name='answers',
        db_index=True
    )
    question = models.ForeignKey(
        'Question',
        on_delete=models.CASCADE,
        related_name='answers',
        db_index=True
    )

    answer_text = models.TextField(blank=True)
    selected_option = models.ForeignKey(
        'QuestionOption',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='answers'
    )

    points_earned = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    is_correct = models.BooleanField(null=True)
    feedback = models.TextField(blank=True)
    grading_method = models.CharField(max_length=20, choices=GradingMethod.choices, blank=True)
    graded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='graded_answers'
    )
    graded_at = models.DateTimeField(null=True, blank=True)
    answered_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['question__order_index']
        indexes = [
            models.Index(fields=['submission', 'question']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['submission', 'question'],
                name='unique_submission_question'
            )
        ]

    def __str__(self):
        return f"Answer to Q{self.question.order_index} by {self.submission.student.username}"

    @property
    def is_pending(self):
        return self.points_earned is None

    @property
    def is_manually_graded(self):
        return self.grading_method == self.GradingMethod.MANUAL

    @property
    def selected_option_text(self):
        return self.selected_option.text if self.selected_option_id else None

    @property
    def correct_option_text(self):
        # iterates the prefetched options when the caller prefetched them
        for option in self.question.options.all():
            if option.is_correct:
                return option.text
        return None
