"""
Grading for multiple-choice and true/false questions.

An answer is correct when the selected option is one flagged correct on the
question. Exactly one option is correct per question, so this is a plain
membership test rather than a set comparison.
"""
import logging
from decimal import Decimal
from typing import Optional, Sequence

from .base import GradingService, GradingResult, OptionKey

logger = logging.getLogger(__name__)


class ChoiceGradingService(GradingService):

    def get_service_name(self) -> str:
        return "auto"

    def grade_answer(
        self,
        question_type: str,
        max_points: int,
        options: Sequence[OptionKey] = (),
        selected_option_id: Optional[int] = None,
        answer_text: str = ""
    ) -> GradingResult:
        correct_ids = {option.id for option in options if option.is_correct}
        if not correct_ids:
            logger.warning(f"Objective question ({question_type}) has no correct option; scoring as incorrect")

        is_correct = selected_option_id is not None and selected_option_id in correct_ids
        return GradingResult(
            points_earned=Decimal(max_points) if is_correct else Decimal(0),
            max_points=max_points,
            is_correct=is_correct,
            grading_method=self.get_service_name()
        )
