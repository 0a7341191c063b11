"""
Shared builders for the exam platform tests.
"""
from django.contrib.auth.models import User

from exams.services import ExamAuthoringService

PASSWORD = 'testpass123'


def make_user(username, admin=False, **extra):
    user = User.objects.create_user(username, f'{username}@test.com', PASSWORD, **extra)
    if admin:
        user.profile.is_admin = True
        user.profile.save()
    return user


def mcq(points=2, correct=0, texts=('A', 'B', 'C', 'D')):
    return {
        'question_type': 'mcq',
        'text': f'Multiple choice worth {points}',
        'points': points,
        'options': [{'text': text, 'is_correct': i == correct} for i, text in enumerate(texts)],
    }


def true_false(points=1, answer=True):
    return {
        'question_type': 'true_false',
        'text': f'True or false worth {points}',
        'points': points,
        'options': [
            {'text': 'True', 'is_correct': answer},
            {'text': 'False', 'is_correct': not answer},
        ],
    }


def open_ended(points=10):
    return {
        'question_type': 'open_ended',
        'text': f'Explain something, worth {points}',
        'points': points,
    }


def make_exam(*questions, created_by=None, assigned_students=(), **fields):
    exam_data = {'title': 'Python Basics', 'duration_minutes': 30}
    exam_data.update(fields)
    return ExamAuthoringService.create_exam(
        exam_data, list(questions), created_by=created_by, assigned_students=assigned_students
    )


def correct_option(question):
    return question.options.get(is_correct=True)


def wrong_option(question):
    return question.options.filter(is_correct=False).first()
