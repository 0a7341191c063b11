from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence


@dataclass
class OptionKey:
    """The slice of a question option a grader needs."""
    id: int
    text: str
    is_correct: bool


@dataclass
class GradingResult:
    points_earned: Optional[Decimal]
    max_points: int
    is_correct: Optional[bool]
    grading_method: str

    @property
    def is_pending(self) -> bool:
        return self.points_earned is None


class GradingService(ABC):
    @abstractmethod
    def grade_answer(
        self,
        question_type: str,
        max_points: int,
        options: Sequence[OptionKey] = (),
        selected_option_id: Optional[int] = None,
        answer_text: str = ""
    ) -> GradingResult:
        pass

    @abstractmethod
    def get_service_name(self) -> str:
        pass
