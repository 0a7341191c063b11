"""
Scoring engine.

Turns a submission's answers into per-answer points and submission totals.
Objective answers are scored automatically; open-ended answers stay pending
(``points_earned is None``) until a grader scores them, and a score set by a
grader is never overwritten by a later scoring pass.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List

from django.utils import timezone

from exams.gateway import DataGateway
from exams.models import Answer, Question
from .base import OptionKey
from .factory import get_grading_service

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


@dataclass
class AnswerScore:
    question_id: int
    answer_id: Optional[int]
    points_earned: Optional[Decimal]
    max_points: int
    is_correct: Optional[bool]
    grading_method: str

    @property
    def is_pending(self) -> bool:
        return self.points_earned is None


@dataclass
class ScoredSubmission:
    submission_id: int
    total_score: Decimal
    max_score: Decimal
    percentage: Decimal
    is_graded: bool
    answers: List[AnswerScore] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        """Only a fully graded submission has an authoritative percentage."""
        return self.is_graded

    @property
    def pending_count(self) -> int:
        return sum(1 for score in self.answers if score.is_pending)


def compute_percentage(total, maximum) -> Decimal:
    if not maximum:
        return Decimal('0.00')
    return (Decimal(total) / Decimal(maximum) * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class ScoringEngine:

    def score_submission(self, submission, answers, questions) -> ScoredSubmission:
        """Score every question of the exam against the given answers."""
        by_question = {answer.question_id: answer for answer in answers}
        scores = [self.score_answer(question, by_question.get(question.id)) for question in questions]
        return self._aggregate(submission.id, questions, scores)

    def tally(self, submission, answers, questions) -> ScoredSubmission:
        """Totals from the scores already stored on the answers, without rescoring."""
        by_question = {answer.question_id: answer for answer in answers}
        scores = []
        for question in questions:
            answer = by_question.get(question.id)
            if answer is not None:
                scores.append(AnswerScore(
                    question_id=question.id,
                    answer_id=answer.id,
                    points_earned=answer.points_earned,
                    max_points=question.points,
                    is_correct=answer.is_correct,
                    grading_method=answer.grading_method,
                ))
            else:
                scores.append(self._unanswered(question))
        return self._aggregate(submission.id, questions, scores)

    def score_answer(self, question, answer=None) -> AnswerScore:
        if answer is not None and answer.is_manually_graded:
            return AnswerScore(
                question_id=question.id,
                answer_id=answer.id,
                points_earned=answer.points_earned,
                max_points=question.points,
                is_correct=answer.is_correct,
                grading_method=answer.grading_method,
            )
        if answer is None:
            return self._unanswered(question)

        service = get_grading_service(question.question_type)
        result = service.grade_answer(
            question_type=question.question_type,
            max_points=question.points,
            options=[
                OptionKey(id=option.id, text=option.text, is_correct=option.is_correct)
                for option in question.options.all()
            ],
            selected_option_id=answer.selected_option_id,
            answer_text=answer.answer_text,
        )
        return AnswerScore(
            question_id=question.id,
            answer_id=answer.id,
            points_earned=result.points_earned,
            max_points=question.points,
            is_correct=result.is_correct,
            grading_method=result.grading_method,
        )

    def _unanswered(self, question) -> AnswerScore:
        objective = question.question_type in Question.OBJECTIVE_TYPES
        return AnswerScore(
            question_id=question.id,
            answer_id=None,
            points_earned=Decimal(0) if objective else None,
            max_points=question.points,
            is_correct=False if objective else None,
            grading_method=Answer.GradingMethod.AUTO if objective else '',
        )

    def _aggregate(self, submission_id, questions, scores) -> ScoredSubmission:
        total = sum((score.points_earned for score in scores if score.points_earned is not None), Decimal(0))
        maximum = Decimal(sum(question.points for question in questions))
        return ScoredSubmission(
            submission_id=submission_id,
            total_score=total,
            max_score=maximum,
            percentage=compute_percentage(total, maximum),
            is_graded=all(not score.is_pending for score in scores),
            answers=scores,
        )


def load_for_scoring(gateway, submission_id, lock=False):
    submission = gateway.get_one(
        'submissions', {'pk': submission_id}, select_related=('exam', 'student'), for_update=lock
    )
    questions = gateway.get(
        'questions', {'exam_id': submission.exam_id},
        order=('order_index', 'id'), prefetch_related=('options',)
    )
    answers = gateway.get('answers', {'submission_id': submission.id})
    return submission, questions, answers


def save_totals(gateway, scored: ScoredSubmission):
    gateway.update('submissions', scored.submission_id, {
        'total_score': scored.total_score,
        'max_score': scored.max_score,
        'percentage': scored.percentage,
        'is_graded': scored.is_graded,
        'graded_at': timezone.now() if scored.is_graded else None,
    })


def score_and_save(submission_id, gateway=None, engine=None) -> ScoredSubmission:
    """Run the scoring engine on a stored submission and persist the result."""
    gateway = gateway or DataGateway()
    engine = engine or ScoringEngine()

    with gateway.atomic():
        submission, questions, answers = load_for_scoring(gateway, submission_id, lock=True)
        scored = engine.score_submission(submission, answers, questions)
        stored = {answer.id: answer for answer in answers}

        for score in scored.answers:
            if score.answer_id is None or score.is_pending or score.grading_method == Answer.GradingMethod.MANUAL:
                continue
            answer = stored[score.answer_id]
            if (answer.points_earned, answer.is_correct, answer.grading_method) == (
                score.points_earned, score.is_correct, score.grading_method
            ):
                continue
            gateway.update('answers', score.answer_id, {
                'points_earned': score.points_earned,
                'is_correct': score.is_correct,
                'grading_method': score.grading_method,
            })

        save_totals(gateway, scored)

    logger.info(
        f"Scored submission {submission_id}: {scored.total_score}/{scored.max_score} "
        f"({'final' if scored.is_final else f'{scored.pending_count} pending'})"
    )
    return scored
