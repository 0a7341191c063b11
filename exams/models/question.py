from django.db import models
from django.core.validators import MinValueValidator


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = 'mcq', 'Multiple Choice'
        TRUE_FALSE = 'true_false', 'True/False'
        OPEN_ENDED = 'open_ended', 'Open Ended'

    OBJECTIVE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)

    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices,
        db_index=True
    )
    text = models.TextField()
    points = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)]
    )
    order_index = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order_index', 'id']
        indexes = [
            models.Index(fields=['exam', 'order_index']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['exam', 'order_index'],
                name='unique_exam_question_order'
            )
        ]

    def __str__(self):
        return f"Q{self.order_index}: {self.text[:50]}..."

    @property
    def is_objective(self):
        return self.question_type in self.OBJECTIVE_TYPES


class QuestionOption(models.Model):
    question = models.ForeignKey(
        Question,
        on_delete=models.CASCADE,
        related_name='options',
        db_index=True
    )
    text = models.CharField(max_length=500)
    is_correct = models.BooleanField(default=False)
    order_index = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['order_index', 'id']

    def __str__(self):
        return self.text
