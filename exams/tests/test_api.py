"""
API tests: authentication, exam authoring, the exam-taking flow and grading.
"""
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth.models import AnonymousUser
from django.core.cache import cache
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from exams.exceptions import NotFound
from exams.identity import IdentityGateway
from exams.models import Answer, AuditLog, Exam, Submission
from exams.session import ExamSession
from .helpers import PASSWORD, make_exam, make_user, mcq, open_ended, true_false, correct_option, wrong_option


class AuthenticationTests(APITestCase):
    """Tests for login, logout and the current user."""

    def setUp(self):
        cache.clear()
        self.user = make_user('student', first_name='Ada', last_name='Lovelace')
        self.url = '/api/auth/login/'

    def test_login_success(self):
        response = self.client.post(self.url, {'username': 'student', 'password': PASSWORD})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['token'], Token.objects.get(user=self.user).key)
        self.assertEqual(response.data['user']['username'], 'student')
        self.assertFalse(response.data['user']['is_admin'])
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.LOGIN, user=self.user).exists())

    def test_login_with_email(self):
        response = self.client.post(self.url, {'username': 'STUDENT@test.com', 'password': PASSWORD})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_wrong_password(self):
        response = self.client.post(self.url, {'username': 'student', 'password': 'wrong'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.LOGIN_FAILED).exists())

    def test_login_disabled_account(self):
        self.user.is_active = False
        self.user.save()
        response = self.client.post(self.url, {'username': 'student', 'password': PASSWORD})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_login_reports_admin_role(self):
        make_user('instructor', admin=True)
        response = self.client.post(self.url, {'username': 'instructor', 'password': PASSWORD})
        self.assertTrue(response.data['user']['is_admin'])

    def test_logout_invalidates_token(self):
        token = self.client.post(self.url, {'username': 'student', 'password': PASSWORD}).data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token}')

        self.assertEqual(self.client.post('/api/auth/logout/').status_code, status.HTTP_200_OK)
        self.assertFalse(Token.objects.filter(user=self.user).exists())
        self.assertEqual(self.client.get('/api/auth/me/').status_code, status.HTTP_401_UNAUTHORIZED)

    def test_current_user(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['full_name'], 'Ada Lovelace')

    def test_unauthenticated_access_denied(self):
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ExamAuthoringTests(APITestCase):
    """Creating and editing exams through the API."""

    def setUp(self):
        cache.clear()
        self.admin = make_user('instructor', admin=True)
        self.student = make_user('student')
        self.client.force_authenticate(user=self.admin)

    def _payload(self, *questions, **fields):
        payload = {'title': 'Loops', 'duration_minutes': 20, 'questions': list(questions)}
        payload.update(fields)
        return payload

    def test_create_exam_with_questions(self):
        response = self.client.post(
            '/api/exams/', self._payload(mcq(), true_false(answer=False), open_ended(points=5)), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        exam = Exam.objects.get(pk=response.data['id'])
        self.assertEqual(exam.created_by, self.admin)
        self.assertEqual(exam.get_question_count(), 3)
        self.assertEqual(exam.get_total_points(), 8)
        self.assertEqual([q['order_index'] for q in response.data['questions']], [0, 1, 2])
        self.assertIn('is_correct', response.data['questions'][0]['options'][0])

    def test_two_correct_options_rejected(self):
        question = mcq()
        question['options'][1]['is_correct'] = True
        response = self.client.post('/api/exams/', self._payload(question), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Exam.objects.exists())

    def test_true_false_needs_true_and_false(self):
        question = true_false()
        question['options'][0]['text'] = 'Yes'
        response = self.client.post('/api/exams/', self._payload(question), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_open_ended_with_options_rejected(self):
        question = open_ended()
        question['options'] = [{'text': 'A', 'is_correct': True}]
        response = self.client.post('/api/exams/', self._payload(question), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_exam_needs_questions(self):
        response = self.client.post('/api/exams/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_end_before_start_rejected(self):
        now = timezone.now()
        response = self.client.post('/api/exams/', self._payload(
            mcq(), start_date=now.isoformat(), end_date=(now - timedelta(hours=1)).isoformat()
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_students_cannot_create_exams(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.post('/api/exams/', self._payload(mcq()), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_questions_locked_once_started(self):
        exam = make_exam(mcq(), created_by=self.admin)
        ExamSession.start_or_resume(exam.id, self.student.id)

        response = self.client.patch(f'/api/exams/{exam.id}/', {'questions': [open_ended()]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(exam.questions.get().question_type, 'mcq')

        response = self.client.patch(f'/api/exams/{exam.id}/', {'title': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['title'], 'Renamed')

    def test_replace_questions_before_anyone_started(self):
        exam = make_exam(mcq(), created_by=self.admin)
        response = self.client.patch(
            f'/api/exams/{exam.id}/', {'questions': [open_ended(), true_false()]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            list(exam.questions.values_list('question_type', flat=True)), ['open_ended', 'true_false']
        )

    def test_toggle_active(self):
        exam = make_exam(mcq())
        response = self.client.post(f'/api/exams/{exam.id}/toggle-active/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])
        exam.refresh_from_db()
        self.assertFalse(exam.is_active)

        self.client.force_authenticate(user=self.student)
        response = self.client.post(f'/api/exams/{exam.id}/toggle-active/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ExamListTests(APITestCase):

    def setUp(self):
        cache.clear()
        self.student = make_user('student')
        self.exam = make_exam(mcq())
        make_exam(mcq(), title='Later', start_date=timezone.now() + timedelta(days=1))
        self.client.force_authenticate(user=self.student)

    def test_student_sees_available_exams_only(self):
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['id'] for e in response.data['results']], [self.exam.id])
        self.assertEqual(response.data['results'][0]['question_count'], 1)

    def test_student_detail_hides_questions(self):
        response = self.client.get(f'/api/exams/{self.exam.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('questions', response.data)

    def test_admin_sees_every_exam(self):
        self.client.force_authenticate(user=make_user('instructor', admin=True))
        response = self.client.get('/api/exams/')
        self.assertEqual(response.data['count'], 2)


class ExamSessionFlowTests(APITestCase):
    """A student takes an exam from start to submission, then an admin grades it."""

    def setUp(self):
        cache.clear()
        self.admin = make_user('instructor', admin=True)
        self.student = make_user('student')
        self.exam = make_exam(mcq(points=2), true_false(points=1), open_ended(points=5), created_by=self.admin)
        self.q_mcq, self.q_tf, self.q_open = list(self.exam.questions.order_by('order_index'))
        self.client.force_authenticate(user=self.student)

    def _start(self):
        return self.client.post(f'/api/exams/{self.exam.id}/session/')

    def test_start_then_resume(self):
        response = self._start()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['resumed'])
        self.assertEqual(len(response.data['questions']), 3)
        self.assertNotIn('is_correct', response.data['questions'][0]['options'][0])

        response = self._start()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['resumed'])
        self.assertEqual(Submission.objects.filter(student=self.student, exam=self.exam).count(), 1)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.EXAM_RESUME).exists())

    def test_exam_not_yet_available(self):
        self.exam.start_date = timezone.now() + timedelta(hours=1)
        self.exam.save()
        response = self._start()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'].code, 'not_yet_available')

    def test_autosave_and_resume(self):
        submission_id = self._start().data['submission_id']
        option = correct_option(self.q_mcq)

        response = self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': [
            {'question_id': self.q_mcq.id, 'selected_option_id': option.id},
            {'question_id': self.q_open.id, 'answer_text': 'A list is mutable.'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['saved'], 2)

        answers = {a['question_id']: a for a in self._start().data['answers']}
        self.assertEqual(answers[self.q_mcq.id]['selected_option_id'], option.id)
        self.assertEqual(answers[self.q_open.id]['answer_text'], 'A list is mutable.')

    def test_duplicate_question_in_autosave_rejected(self):
        submission_id = self._start().data['submission_id']
        response = self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': [
            {'question_id': self.q_open.id, 'answer_text': 'one'},
            {'question_id': self.q_open.id, 'answer_text': 'two'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_students_cannot_touch_submission(self):
        submission_id = self._start().data['submission_id']
        self.client.force_authenticate(user=make_user('intruder'))

        response = self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post(f'/api/submissions/{submission_id}/submit/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_autosave_after_deadline_submits(self):
        submission_id = self._start().data['submission_id']
        Submission.objects.filter(pk=submission_id).update(started_at=timezone.now() - timedelta(minutes=31))

        response = self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': [
            {'question_id': self.q_open.id, 'answer_text': 'late'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'].code, 'expired')

        submission = Submission.objects.get(pk=submission_id)
        self.assertTrue(submission.is_submitted)
        self.assertEqual(submission.answers.get(question=self.q_open).answer_text, '')
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.EXAM_AUTO_SUBMIT).exists())

    def test_late_submit_ignores_body_answers(self):
        submission_id = self._start().data['submission_id']
        Submission.objects.filter(pk=submission_id).update(started_at=timezone.now() - timedelta(hours=1))

        response = self.client.post(f'/api/submissions/{submission_id}/submit/', {'answers': [
            {'question_id': self.q_mcq.id, 'selected_option_id': correct_option(self.q_mcq).id},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['auto_submitted'])
        self.assertEqual(response.data['total_score'], '0.00')

    @override_settings(EXAM_SESSION={'TIMER_POLICY': 'client'})
    def test_client_timer_policy_trusts_reported_time(self):
        submission_id = self._start().data['submission_id']
        response = self.client.post(f'/api/submissions/{submission_id}/submit/', {
            'answers': [{'question_id': self.q_open.id, 'answer_text': 'ignored'}],
            'remaining_seconds': 0,
        }, format='json')
        self.assertTrue(response.data['auto_submitted'])
        self.assertEqual(response.data['time_taken_minutes'], 30)

    def test_full_flow_through_grading(self):
        submission_id = self._start().data['submission_id']
        self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': [
            {'question_id': self.q_mcq.id, 'selected_option_id': correct_option(self.q_mcq).id},
            {'question_id': self.q_tf.id, 'selected_option_id': wrong_option(self.q_tf).id},
        ]}, format='json')

        response = self.client.post(f'/api/submissions/{submission_id}/submit/', {
            'answers': [
                {'question_id': self.q_tf.id, 'selected_option_id': correct_option(self.q_tf).id},
                {'question_id': self.q_open.id, 'answer_text': 'Lists are mutable; tuples are not.'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['auto_submitted'])
        self.assertEqual(response.data['total_score'], '3.00')
        self.assertEqual(response.data['max_score'], '8.00')
        self.assertFalse(response.data['is_graded'])
        self.assertEqual(response.data['pending_count'], 1)

        # second submit and restart are refused
        response = self.client.post(f'/api/submissions/{submission_id}/submit/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'already_submitted')
        self.assertEqual(self._start().status_code, status.HTTP_409_CONFLICT)

        grades = self.client.get('/api/my-grades/').data
        self.assertEqual(len(grades), 1)
        self.assertFalse(grades[0]['is_final'])
        self.assertIsNone(grades[0]['percentage'])
        self.assertEqual(
            self.client.get(f'/api/my-grades/{submission_id}/').status_code, status.HTTP_403_FORBIDDEN
        )

        self.client.force_authenticate(user=self.admin)
        listing = self.client.get('/api/grading/submissions/', {'status': 'ungraded'})
        self.assertEqual([s['id'] for s in listing.data['results']], [submission_id])
        self.assertEqual(listing.data['results'][0]['grading_state'], 'partially_graded')

        detail = self.client.get(f'/api/grading/submissions/{submission_id}/').data
        essay = next(a for a in detail['answers'] if a['question_type'] == 'open_ended')
        self.assertIsNone(essay['points_earned'])

        response = self.client.patch(f'/api/grading/answers/{essay["id"]}/', {'points_earned': 6}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(
            f'/api/grading/answers/{essay["id"]}/', {'points_earned': '4', 'feedback': 'Give an example.'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['points_earned'], '4.00')
        self.assertEqual(response.data['grading_method'], 'manual')
        self.assertTrue(response.data['submission']['is_graded'])
        self.assertEqual(response.data['submission']['percentage'], '87.50')

        self.client.force_authenticate(user=self.student)
        grades = self.client.get('/api/my-grades/').data
        self.assertTrue(grades[0]['is_final'])
        self.assertEqual(grades[0]['percentage'], '87.50')
        self.assertEqual(grades[0]['letter'], 'B')
        self.assertTrue(grades[0]['passed'])

        review = self.client.get(f'/api/my-grades/{submission_id}/')
        self.assertEqual(review.status_code, status.HTTP_200_OK)
        self.assertEqual(review.data['answers'][2]['feedback'], 'Give an example.')
        self.assertEqual(review.data['answers'][0]['selected_option_text'], 'A')


class GradingApiTests(APITestCase):

    def setUp(self):
        cache.clear()
        self.admin = make_user('instructor', admin=True)
        self.student = make_user('student')
        self.exam = make_exam(mcq(points=2), open_ended(points=10))
        session = ExamSession.start_or_resume(self.exam.id, self.student.id)
        session.record_answer(session.questions[1].id, 'An essay')
        session.finalize()
        self.submission = Submission.objects.get(pk=session.submission_id)
        self.essay = self.submission.answers.get(question__question_type='open_ended')
        self.client.force_authenticate(user=self.admin)

    def test_students_refused_and_audited(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/grading/submissions/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'].code, 'unauthorized')

        response = self.client.patch(f'/api/grading/answers/{self.essay.id}/', {'points_earned': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(
            AuditLog.objects.filter(event_type=AuditLog.EventType.PERMISSION_DENIED, user=self.student).count(), 2
        )

    def test_unknown_status_filter(self):
        response = self.client.get('/api/grading/submissions/', {'status': 'pending'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_batch_grades(self):
        response = self.client.post(f'/api/grading/submissions/{self.submission.id}/grades/', {
            'grades': [{'answer_id': self.essay.id, 'points_earned': '9.5', 'feedback': 'Solid'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_final'])
        self.assertEqual(response.data['total_score'], '9.50')

    def test_batch_grades_rejects_out_of_range(self):
        response = self.client.post(f'/api/grading/submissions/{self.submission.id}/grades/', {
            'grades': [{'answer_id': self.essay.id, 'points_earned': 11}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.essay.refresh_from_db()
        self.assertIsNone(self.essay.points_earned)

    def test_rescore_and_recompute(self):
        Answer.objects.filter(submission=self.submission).exclude(pk=self.essay.pk).update(points_earned=None)

        response = self.client.post(f'/api/grading/submissions/{self.submission.id}/recompute/')
        self.assertEqual(response.data['pending_count'], 2)

        response = self.client.post(f'/api/grading/submissions/{self.submission.id}/rescore/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pending_count'], 1)

    def test_delete_submission(self):
        response = self.client.delete(f'/api/grading/submissions/{self.submission.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Submission.objects.filter(pk=self.submission.id).exists())

    def test_dashboard_and_students(self):
        response = self.client.get('/api/dashboard/admin/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_students'], 1)
        self.assertEqual(response.data['pending_grading'], 1)
        self.assertEqual(len(response.data['recent_submissions']), 1)

        response = self.client.get('/api/students/')
        self.assertEqual([s['username'] for s in response.data], ['student'])


class CloseExpiredSessionsCommandTests(APITestCase):

    def setUp(self):
        self.student = make_user('student')
        self.exam = make_exam(mcq(), duration_minutes=10)

    def _run(self, *args):
        out = StringIO()
        call_command('close_expired_sessions', *args, stdout=out, stderr=StringIO())
        return out.getvalue()

    def test_submits_expired_attempts_only(self):
        expired = ExamSession.start_or_resume(self.exam.id, self.student.id)
        Submission.objects.filter(pk=expired.submission_id).update(started_at=timezone.now() - timedelta(minutes=11))
        running = ExamSession.start_or_resume(make_exam(mcq(), title='Running').id, self.student.id)

        output = self._run()

        self.assertIn('Auto-submitted 1 of 1', output)
        self.assertTrue(Submission.objects.get(pk=expired.submission_id).is_submitted)
        self.assertFalse(Submission.objects.get(pk=running.submission_id).is_submitted)

    def test_dry_run(self):
        session = ExamSession.start_or_resume(self.exam.id, self.student.id)
        Submission.objects.filter(pk=session.submission_id).update(started_at=timezone.now() - timedelta(hours=1))

        with mock.patch('exams.session.controller.score_and_save') as scorer:
            output = self._run('--dry-run')

        self.assertIn('Would submit', output)
        scorer.assert_not_called()
        self.assertFalse(Submission.objects.get(pk=session.submission_id).is_submitted)

    def test_nothing_to_do(self):
        self.assertIn('No expired attempts', self._run())


class SchemaTests(APITestCase):

    def test_schema_documents_token_auth(self):
        response = self.client.get('/api/schema/', {'format': 'json'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        schema = response.data
        self.assertEqual(list(schema['components']['securitySchemes']), ['TokenAuth'])
        self.assertEqual(schema['paths']['/api/auth/login/']['post']['security'], [])
        self.assertEqual(
            schema['paths']['/api/exams/{id}/session/']['post']['security'], [{'TokenAuth': []}]
        )


class IdentityGatewayTests(APITestCase):

    def test_roles(self):
        student = make_user('student')
        admin = make_user('instructor', admin=True)
        gateway = IdentityGateway()

        self.assertFalse(gateway.get_role(student.id).is_admin)
        self.assertTrue(gateway.get_role(admin.id).is_admin)
        with self.assertRaises(NotFound):
            gateway.get_role(99999)

    def test_current_user_requires_authentication(self):
        request = mock.Mock(user=AnonymousUser())
        self.assertIsNone(IdentityGateway(request).get_current_user())

        student = make_user('student')
        self.assertEqual(IdentityGateway(mock.Mock(user=student)).get_current_user(), student)


class MiddlewareTests(APITestCase):

    def setUp(self):
        cache.clear()
        self.student = make_user('student')
        self.exam = make_exam(open_ended(points=5))
        self.client.force_authenticate(user=self.student)

    def test_api_responses_are_not_cached(self):
        response = self.client.get('/api/exams/')
        self.assertEqual(response['Cache-Control'], 'no-store, no-cache, must-revalidate, private')
        self.assertEqual(response['X-Frame-Options'], 'DENY')

    def test_submission_writes_are_logged(self):
        submission_id = self.client.post(f'/api/exams/{self.exam.id}/session/').data['submission_id']
        question = self.exam.questions.get()

        with self.assertLogs('exams.middleware', level='INFO') as logs:
            self.client.put(f'/api/submissions/{submission_id}/answers/', {'answers': [
                {'question_id': question.id, 'answer_text': 'draft'},
            ]}, format='json')
        self.assertIn(f'SUBMISSION_ANSWERS | User: student | Submission: {submission_id}', logs.output[0])
        self.assertIn('Status: 200', logs.output[0])

        with self.assertLogs('exams.middleware', level='WARNING'):
            self.client.post(f'/api/submissions/{submission_id + 1000}/submit/', {}, format='json')
