from exams.models import Question
from .base import GradingService
from .choice_grader import ChoiceGradingService
from .manual_grader import ManualGradingService


def get_grading_service(question_type: str) -> GradingService:
    if question_type in Question.OBJECTIVE_TYPES:
        return ChoiceGradingService()
    if question_type == Question.QuestionType.OPEN_ENDED:
        return ManualGradingService()
    raise ValueError(f"Unknown question type: {question_type}")
