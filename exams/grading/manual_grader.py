from typing import Optional, Sequence

from .base import GradingService, GradingResult, OptionKey


class ManualGradingService(GradingService):
    """Open-ended answers wait for a human grader."""

    def get_service_name(self) -> str:
        return "manual"

    def grade_answer(
        self,
        question_type: str,
        max_points: int,
        options: Sequence[OptionKey] = (),
        selected_option_id: Optional[int] = None,
        answer_text: str = ""
    ) -> GradingResult:
        return GradingResult(
            points_earned=None,
            max_points=max_points,
            is_correct=None,
            grading_method=""
        )
