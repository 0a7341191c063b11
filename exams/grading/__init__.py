from .base import GradingService, GradingResult, OptionKey
from .choice_grader import ChoiceGradingService
from .manual_grader import ManualGradingService
from .factory import get_grading_service
from .scoring import ScoringEngine, ScoredSubmission, AnswerScore, score_and_save

__all__ = [
    'GradingService', 'GradingResult', 'OptionKey',
    'ChoiceGradingService', 'ManualGradingService', 'get_grading_service',
    'ScoringEngine', 'ScoredSubmission', 'AnswerScore', 'score_and_save',
]
