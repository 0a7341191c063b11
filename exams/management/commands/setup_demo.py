"""
Management command to set up demo data for the exam platform.
Creates a demo admin, a demo student and one exam with every question type.
"""
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from rest_framework.authtoken.models import Token

from exams.models import Exam
from exams.services import ExamAuthoringService

DEMO_EXAM_TITLE = 'Python Basics Quiz'

DEMO_QUESTIONS = [
    {
        'question_type': 'mcq',
        'text': 'What is the output of print(type([]))?',
        'points': 2,
        'options': [
            {'text': "<class 'list'>", 'is_correct': True},
            {'text': "<class 'tuple'>", 'is_correct': False},
            {'text': "<class 'dict'>", 'is_correct': False},
            {'text': "<class 'set'>", 'is_correct': False},
        ],
    },
    {
        'question_type': 'true_false',
        'text': 'Python is a statically typed programming language.',
        'points': 1,
        'options': [
            {'text': 'True', 'is_correct': False},
            {'text': 'False', 'is_correct': True},
        ],
    },
    {
        'question_type': 'open_ended',
        'text': 'Compare Python lists and tuples. Include an example of each.',
        'points': 5,
    },
]


class Command(BaseCommand):
    help = 'Set up demo data for testing'

    def _user(self, username, password, **defaults):
        user, created = User.objects.get_or_create(username=username, defaults=defaults)
        if created:
            user.set_password(password)
            user.save()
            self.stdout.write(self.style.SUCCESS(f'✓ Created {username} / {password}'))
        else:
            self.stdout.write(f'  User {username} already exists')
        token, _ = Token.objects.get_or_create(user=user)
        return user, token

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('\nSetting up exam platform demo data...\n'))

        student, student_token = self._user(
            'student', 'student123',
            email='student@example.com', first_name='Test', last_name='Student'
        )
        admin, admin_token = self._user(
            'admin', 'admin123',
            email='admin@example.com', is_staff=True, is_superuser=True
        )
        if not admin.profile.is_admin:
            admin.profile.is_admin = True
            admin.profile.save()

        exam = Exam.objects.filter(title=DEMO_EXAM_TITLE).first()
        if exam is None:
            exam = ExamAuthoringService.create_exam(
                {
                    'title': DEMO_EXAM_TITLE,
                    'description': 'Test your Python knowledge with this quiz',
                    'duration_minutes': 30,
                },
                DEMO_QUESTIONS,
                created_by=admin
            )
            self.stdout.write(self.style.SUCCESS(f'✓ Exam: {exam.title} with {len(DEMO_QUESTIONS)} questions'))
        else:
            self.stdout.write(f'  Exam already exists: {exam.title}')

        self.stdout.write(self.style.SUCCESS('\n' + '=' * 60))
        self.stdout.write(self.style.SUCCESS('Demo Setup Complete!'))
        self.stdout.write(self.style.SUCCESS('=' * 60))

        self.stdout.write('\nDemo Accounts:')
        self.stdout.write('  Student:  student / student123')
        self.stdout.write('  Admin:    admin / admin123')

        self.stdout.write('\nAPI Tokens:')
        self.stdout.write(f'  Student:  {student_token.key}')
        self.stdout.write(f'  Admin:    {admin_token.key}')

        self.stdout.write('\nAPI Documentation:')
        self.stdout.write('  Swagger UI: http://localhost:8000/api/docs/')
        self.stdout.write('  ReDoc:      http://localhost:8000/api/redoc/')

        self.stdout.write('\nTry it:')
        self.stdout.write(
            f'  curl -X POST -H "Authorization: Token {student_token.key}" '
            f'http://localhost:8000/api/exams/{exam.id}/session/'
        )
        self.stdout.write('')
