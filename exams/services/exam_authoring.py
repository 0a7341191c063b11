"""
Exam authoring: create an exam with its questions and options in one go.
"""
import logging

from django.db import transaction

from exams.exceptions import ValidationError
from exams.models import Exam, Question, QuestionOption

logger = logging.getLogger(__name__)


class ExamAuthoringService:
    TRUE_FALSE_OPTIONS = ('True', 'False')

    @classmethod
    def validate_question(cls, question_type, options, position):
        """Check one question's options. ``options`` is a list of ``{'text', 'is_correct'}``."""
        label = f"Question {position}"
        correct = [option for option in options if option.get('is_correct')]

        if question_type == Question.QuestionType.OPEN_ENDED:
            if options:
                raise ValidationError(f"{label}: open-ended questions have no options.")
            return

        if question_type == Question.QuestionType.TRUE_FALSE:
            texts = tuple(option.get('text', '').strip() for option in options)
            if texts != cls.TRUE_FALSE_OPTIONS:
                raise ValidationError(f"{label}: true/false questions need exactly the options 'True' and 'False'.")
        elif question_type == Question.QuestionType.MULTIPLE_CHOICE:
            if len(options) < 2:
                raise ValidationError(f"{label}: multiple choice questions need at least two options.")
            if any(not option.get('text', '').strip() for option in options):
                raise ValidationError(f"{label}: options cannot be blank.")
        else:
            raise ValidationError(f"{label}: unknown question type '{question_type}'.")

        if len(correct) != 1:
            raise ValidationError(f"{label}: exactly one option must be marked correct.")

    @classmethod
    def create_exam(cls, exam_data, questions_data, created_by=None, assigned_students=()):
        """
        Create the exam, its ordered questions and their options atomically.
        Returns the new ``Exam``.
        """
        if not questions_data:
            raise ValidationError("An exam needs at least one question.")
        for position, question in enumerate(questions_data, start=1):
            cls.validate_question(question['question_type'], question.get('options', []), position)

        with transaction.atomic():
            exam = Exam.objects.create(created_by=created_by, **exam_data)
            if assigned_students:
                exam.assigned_students.set(assigned_students)
            cls._create_questions(exam, questions_data)

        logger.info(f"Exam {exam.id} created with {len(questions_data)} questions")
        return exam

    @classmethod
    def replace_questions(cls, exam, questions_data):
        """Swap an exam's questions. Refused once anyone has started the exam."""
        if exam.has_submissions():
            raise ValidationError("Questions cannot be changed after students have started this exam.")
        if not questions_data:
            raise ValidationError("An exam needs at least one question.")
        for position, question in enumerate(questions_data, start=1):
            cls.validate_question(question['question_type'], question.get('options', []), position)

        with transaction.atomic():
            exam.questions.all().delete()
            cls._create_questions(exam, questions_data)
        return exam

    @classmethod
    def set_active(cls, exam, is_active):
        Exam.objects.filter(pk=exam.pk).update(is_active=is_active)
        exam.is_active = is_active
        logger.info(f"Exam {exam.id} {'activated' if is_active else 'deactivated'}")
        return exam

    @classmethod
    def _create_questions(cls, exam, questions_data):
        for order_index, data in enumerate(questions_data):
            question = Question.objects.create(
                exam=exam,
                question_type=data['question_type'],
                text=data['text'],
                points=data.get('points', 1),
                order_index=order_index,
            )
            QuestionOption.objects.bulk_create([
                QuestionOption(
                    question=question,
                    text=option['text'].strip(),
                    is_correct=bool(option.get('is_correct')),
                    order_index=index,
                )
                for index, option in enumerate(data.get('options', []))
            ])
