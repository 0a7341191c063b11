from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone


class Exam(models.Model):
    class Visibility(models.TextChoices):
        ALL = 'all', 'All Students'
        SELECTED = 'selected', 'Selected Students'

    class Availability(models.TextChoices):
        OPEN = 'open', 'Open'
        NOT_YET_AVAILABLE = 'not_yet_available', 'Not Yet Available'
        EXPIRED = 'expired', 'Expired'

    title = models.CharField(max_length=300)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(480)]
    )

    # Scheduling
    start_date = models.DateTimeField(null=True, blank=True, help_text="When exam becomes available")
    end_date = models.DateTimeField(null=True, blank=True, help_text="When exam closes")

    is_active = models.BooleanField(default=True, db_index=True)
    allow_review = models.BooleanField(default=True, help_text="Students may review their answers after grading")
    visibility = models.CharField(
        max_length=20,
        choices=Visibility.choices,
        default=Visibility.ALL
    )
    assigned_students = models.ManyToManyField(
        User,
        blank=True,
        related_name='assigned_exams',
        help_text="Only used when visibility is 'selected'"
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='created_exams'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'start_date']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return self.title

    def get_total_points(self):
        return self.questions.aggregate(total=models.Sum('points'))['total'] or 0

    def get_question_count(self):
        return self.questions.count()

    def availability(self, now=None):
        """Where `now` falls relative to the exam window."""
        now = now or timezone.now()
        if self.start_date and now < self.start_date:
            return self.Availability.NOT_YET_AVAILABLE
        if self.end_date and now > self.end_date:
            return self.Availability.EXPIRED
        return self.Availability.OPEN

    def is_visible_to(self, user):
        if self.visibility == self.Visibility.ALL:
            return True
        user_id = getattr(user, 'pk', user)
        return self.assigned_students.filter(pk=user_id).exists()

    def has_submissions(self):
        return self.submissions.exists()
