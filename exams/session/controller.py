"""
Exam session controller.

One ``ExamSession`` drives one student's attempt at one exam: it loads the
exam, creates or resumes the submission row, buffers answers in memory,
autosaves them, counts down the remaining time and finalizes the attempt
exactly once (on demand or when the countdown reaches zero).
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

from exams.exceptions import AlreadySubmitted, Expired, NotFound, NotYetAvailable, TransientIOError, ValidationError
from exams.gateway import DataGateway
from exams.grading import ScoredSubmission, score_and_save
from exams.models import Exam
from .timers import PeriodicTask

logger = logging.getLogger(__name__)

TIMER_POLICY_SERVER = 'server'
TIMER_POLICY_CLIENT = 'client'


def session_setting(name, default):
    return getattr(settings, 'EXAM_SESSION', {}).get(name, default)


@dataclass
class BufferedAnswer:
    question_id: int
    answer_text: str = ''
    selected_option_id: Optional[int] = None


@dataclass
class SubmissionResult:
    submission_id: int
    submitted_at: datetime
    time_taken_minutes: int
    auto_submitted: bool
    scored: ScoredSubmission


class ExamSession:

    def __init__(self, gateway, exam, submission, questions, answers=(), clock=None, resumed=False):
        self.gateway = gateway
        self.exam = exam
        self.submission = submission
        self.questions = list(questions)
        self.clock = clock or timezone.now
        self.resumed = resumed

        self._questions = {question.id: question for question in self.questions}
        self._buffer = {
            answer.question_id: BufferedAnswer(
                question_id=answer.question_id,
                answer_text=answer.answer_text,
                selected_option_id=answer.selected_option_id,
            )
            for answer in answers
        }
        self._version = 0
        self._saved_version = 0
        self._lock = threading.RLock()
        self._finalizing = False
        self._finalized = submission.is_submitted
        self._tasks = []

        self.remaining_seconds = self.compute_remaining_seconds()

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def start_or_resume(cls, exam_id, student_id, gateway=None, clock=None):
        """
        Open the student's attempt at an exam, creating the submission on the
        first visit and reloading saved answers on later ones.
        """
        gateway = gateway or DataGateway()
        clock = clock or timezone.now

        exam = gateway.get_one('exams', {'pk': exam_id})
        submitted = gateway.count('submissions', {
            'exam_id': exam.id, 'student_id': student_id, 'is_submitted': True
        })
        if submitted:
            raise AlreadySubmitted()

        if not exam.is_active or not exam.is_visible_to(student_id):
            raise NotFound("Exam not found.")

        now = clock()
        availability = exam.availability(now)
        if availability == Exam.Availability.NOT_YET_AVAILABLE:
            raise NotYetAvailable()
        if availability == Exam.Availability.EXPIRED:
            raise Expired()

        questions = gateway.get(
            'questions', {'exam_id': exam.id},
            order=('order_index', 'id'), prefetch_related=('options',)
        )
        if not questions:
            raise NotFound("This exam has no questions yet.")

        submission, created = gateway.upsert(
            'submissions',
            {'exam_id': exam.id, 'student_id': student_id},
            create_values={'started_at': now, 'is_submitted': False}
        )
        if submission.is_submitted:
            raise AlreadySubmitted()

        answers = gateway.get('answers', {'submission_id': submission.id})
        session = cls(gateway, exam, submission, questions, answers, clock=clock, resumed=not created)
        logger.info(
            f"{'Resumed' if session.resumed else 'Started'} submission {submission.id} "
            f"(exam {exam.id}, student {student_id}), {session.remaining_seconds}s remaining"
        )
        return session

    @classmethod
    def for_submission(cls, submission_id, student_id=None, gateway=None, clock=None):
        """Rebuild the session of an open submission from stored state."""
        gateway = gateway or DataGateway()
        filter = {'pk': submission_id}
        if student_id is not None:
            filter['student_id'] = student_id
        submission = gateway.get_one('submissions', filter, select_related=('exam',))
        if submission.is_submitted:
            raise AlreadySubmitted()

        questions = gateway.get(
            'questions', {'exam_id': submission.exam_id},
            order=('order_index', 'id'), prefetch_related=('options',)
        )
        answers = gateway.get('answers', {'submission_id': submission.id})
        return cls(gateway, submission.exam, submission, questions, answers, clock=clock, resumed=True)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def submission_id(self):
        return self.submission.pk

    @property
    def is_finalized(self):
        return self._finalized

    @property
    def is_dirty(self):
        return self._version != self._saved_version

    @property
    def answers(self):
        with self._lock:
            return dict(self._buffer)

    @property
    def unanswered_question_ids(self):
        with self._lock:
            return [question.id for question in self.questions if question.id not in self._buffer]

    def compute_remaining_seconds(self):
        full = self.exam.duration_minutes * 60
        if self._finalized:
            return 0
        if session_setting('TIMER_POLICY', TIMER_POLICY_SERVER) == TIMER_POLICY_CLIENT:
            return full
        elapsed = (self.clock() - self.submission.started_at).total_seconds()
        return max(0, min(full, int(full - elapsed)))

    def compute_time_taken(self):
        return max(0, self.exam.duration_minutes - self.remaining_seconds // 60)

    # =========================================================================
    # ANSWERS
    # =========================================================================

    def record_answer(self, question_id, value):
        """Buffer the answer for a question. No storage I/O happens here."""
        question = self._questions.get(question_id)
        if question is None:
            raise ValidationError(f"Question {question_id} does not belong to this exam.")

        if question.is_objective:
            buffered = BufferedAnswer(question_id=question_id, selected_option_id=self._option_id(question, value))
        else:
            buffered = BufferedAnswer(question_id=question_id, answer_text='' if value is None else str(value))

        with self._lock:
            if self._finalized or self._finalizing:
                raise AlreadySubmitted()
            if self.remaining_seconds <= 0:
                raise Expired("Time is up for this exam.")
            self._buffer[question_id] = buffered
            self._version += 1

    def _option_id(self, question, value):
        if value is None or value == '':
            return None
        try:
            option_id = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid option for question {question.id}.")
        if option_id not in {option.id for option in question.options.all()}:
            raise ValidationError(f"Option {option_id} does not belong to question {question.id}.")
        return option_id

    def flush(self):
        """
        Write buffered answers if anything changed since the last save.
        Returns the number of answers written.
        """
        with self._lock:
            if not self.is_dirty:
                return 0
            version = self._version
            pending = list(self._buffer.values())

        with self.gateway.atomic():
            submission = self.gateway.get_one('submissions', {'pk': self.submission_id}, for_update=True)
            if submission.is_submitted:
                raise AlreadySubmitted()
            self._write_answers(pending)

        with self._lock:
            self._saved_version = max(self._saved_version, version)
        return len(pending)

    def _write_answers(self, pending):
        for item in pending:
            self.gateway.upsert(
                'answers',
                {'submission_id': self.submission_id, 'question_id': item.question_id},
                values={'answer_text': item.answer_text, 'selected_option_id': item.selected_option_id}
            )

    def autosave_tick(self):
        """Periodic save. Storage failures are logged and retried next time."""
        if self._finalized or not self.is_dirty:
            return False
        try:
            saved = self.flush()
        except TransientIOError:
            logger.warning(f"Autosave of submission {self.submission_id} failed; retrying on next tick")
            return False
        except AlreadySubmitted:
            logger.info(f"Submission {self.submission_id} was finalized elsewhere; stopping autosave")
            self._stop()
            return False
        except NotFound:
            logger.warning(f"Submission {self.submission_id} no longer exists; stopping autosave")
            self._stop()
            return False
        logger.debug(f"Autosaved {saved} answers for submission {self.submission_id}")
        return saved > 0

    # =========================================================================
    # COUNTDOWN & FINALIZE
    # =========================================================================

    def tick(self):
        """One second of countdown. Auto-submits when time runs out."""
        with self._lock:
            if self._finalized or self._finalizing:
                return None
            if self.remaining_seconds > 0:
                self.remaining_seconds -= 1
            if self.remaining_seconds > 0:
                return None

        try:
            return self.finalize(auto_submit=True)
        except (AlreadySubmitted, NotFound):
            return None
        except TransientIOError:
            logger.warning(f"Auto-submit of submission {self.submission_id} failed; retrying on next tick")
            return None

    def finalize(self, auto_submit=False):
        """
        Close the attempt: flush answers, mark the submission submitted and
        score it. Runs at most once per submission; later calls, from this
        session or any other, raise ``AlreadySubmitted``.
        """
        with self._lock:
            if self._finalized or self._finalizing:
                raise AlreadySubmitted()
            self._finalizing = True
            version = self._version
            pending = list(self._buffer.values())

        try:
            now = self.clock()
            time_taken = self.compute_time_taken()
            with self.gateway.atomic():
                submission = self.gateway.get_one('submissions', {'pk': self.submission_id}, for_update=True)
                if submission.is_submitted:
                    raise AlreadySubmitted()

                self._write_answers(pending)
                self._create_blank_answers()

                changed = self.gateway.update(
                    'submissions', self.submission_id,
                    {'submitted_at': now, 'is_submitted': True, 'time_taken_minutes': time_taken},
                    expect={'is_submitted': False}
                )
                if not changed:
                    raise AlreadySubmitted()

                scored = score_and_save(self.submission_id, gateway=self.gateway)
        except AlreadySubmitted:
            self._stop()
            raise
        except NotFound:
            logger.warning(f"Submission {self.submission_id} was deleted before it could be submitted")
            self._stop()
            raise
        except Exception:
            with self._lock:
                self._finalizing = False
            raise

        with self._lock:
            self._saved_version = max(self._saved_version, version)
            self._finalizing = False
            self._finalized = True
        self.close()

        self.submission = self.gateway.get_one('submissions', {'pk': self.submission_id}, select_related=('exam',))
        logger.info(
            f"Submission {self.submission_id} {'auto-submitted' if auto_submit else 'submitted'} "
            f"after {time_taken} min, score {scored.total_score}/{scored.max_score}"
        )
        return SubmissionResult(
            submission_id=self.submission_id,
            submitted_at=now,
            time_taken_minutes=time_taken,
            auto_submitted=auto_submit,
            scored=scored,
        )

    def _create_blank_answers(self):
        stored = {
            answer.question_id
            for answer in self.gateway.get('answers', {'submission_id': self.submission_id})
        }
        for question in self.questions:
            if question.id not in stored:
                self.gateway.insert('answers', {
                    'submission_id': self.submission_id,
                    'question_id': question.id,
                })

    # =========================================================================
    # TIMERS
    # =========================================================================

    def start_timers(self, tick_interval=None, autosave_interval=None):
        if self._tasks or self._finalized:
            return
        self._tasks = [
            PeriodicTask(
                tick_interval or session_setting('TICK_SECONDS', 1),
                self.tick,
                name=f'exam-countdown-{self.submission_id}'
            ),
            PeriodicTask(
                autosave_interval or session_setting('AUTOSAVE_INTERVAL_SECONDS', 2),
                self.autosave_tick,
                name=f'exam-autosave-{self.submission_id}'
            ),
        ]
        for task in self._tasks:
            task.start()

    @property
    def timers_running(self):
        return any(task.is_running for task in self._tasks)

    def _stop(self):
        with self._lock:
            self._finalizing = False
            self._finalized = True
        self.close()

    def close(self):
        """Stop both periodic tasks. Safe to call more than once."""
        tasks, self._tasks = self._tasks, []
        # a task thread must not join its sibling, which may be closing too
        from_task = threading.current_thread() in {task.thread for task in tasks}
        for task in tasks:
            task.cancel(wait=not from_task)

    def __enter__(self):
        self.start_timers()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
