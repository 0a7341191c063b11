from .controller import ExamSession, BufferedAnswer, SubmissionResult
from .timers import PeriodicTask

__all__ = ['ExamSession', 'BufferedAnswer', 'SubmissionResult', 'PeriodicTask']
