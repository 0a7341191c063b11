from .exam_authoring import ExamAuthoringService
from .gradebook import Gradebook, GradeEntry, letter_grade
from .grading_workbench import GradingWorkbench

__all__ = [
    'ExamAuthoringService',
    'Gradebook',
    'GradeEntry',
    'letter_grade',
    'GradingWorkbench',
]
