from .exam import Exam
from .question import Question, QuestionOption
from .submission import Submission
from .answer import Answer
from .audit import AuditLog
from .user_profile import UserProfile

__all__ = [
    'Exam', 'Question', 'QuestionOption', 'Submission', 'Answer',
    'AuditLog', 'UserProfile',
]
