"""
Submit open attempts whose time ran out while nobody was watching them.

Students who close the browser mid-exam never send the final request, so the
countdown never reaches zero on their side. Run this periodically (cron) to
auto-submit and score those attempts.
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from exams.exceptions import AlreadySubmitted, TransientIOError
from exams.models import AuditLog, Submission
from exams.session import ExamSession


class Command(BaseCommand):
    help = 'Auto-submit exam attempts whose time limit has passed'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='List expired attempts without submitting them')

    def handle(self, *args, **options):
        now = timezone.now()
        expired = [
            submission
            for submission in Submission.objects.filter(is_submitted=False).select_related('exam', 'student')
            if submission.deadline <= now
        ]

        if not expired:
            self.stdout.write('No expired attempts.')
            return

        closed = 0
        for submission in expired:
            if options['dry_run']:
                self.stdout.write(f'  Would submit #{submission.id} ({submission.student.username}, {submission.exam.title})')
                continue
            try:
                result = ExamSession.for_submission(submission.id).finalize(auto_submit=True)
            except AlreadySubmitted:
                continue
            except TransientIOError:
                self.stderr.write(self.style.WARNING(f'  Submission #{submission.id} could not be saved; will retry next run'))
                continue

            AuditLog.log(
                event_type=AuditLog.EventType.EXAM_AUTO_SUBMIT,
                description=f"Auto-submitted after deadline: {submission.exam.title}",
                user=submission.student,
                metadata={'exam_id': submission.exam_id, 'submission_id': submission.id}
            )
            closed += 1
            self.stdout.write(
                f'  Submitted #{submission.id}: {result.scored.total_score}/{result.scored.max_score}'
            )

        self.stdout.write(self.style.SUCCESS(f'✓ Auto-submitted {closed} of {len(expired)} expired attempts'))
