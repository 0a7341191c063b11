"""
API views for the exam platform.

Students start or resume an exam, autosave answers and submit; admins author
exams and grade submissions. The views stay thin: session rules live in
``exams.session`` and grading rules in ``exams.services``.
"""
import logging

from django.db.models import Prefetch
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiParameter,
    OpenApiExample, OpenApiResponse
)

from exams.exceptions import Expired
from exams.identity import is_admin
from exams.models import Exam, QuestionOption, AuditLog
from exams.permissions import IsAdminOrReadOnly, IsAdminRole
from exams.services import ExamAuthoringService, Gradebook, GradingWorkbench
from exams.session import ExamSession
from exams.session.controller import TIMER_POLICY_CLIENT, TIMER_POLICY_SERVER, session_setting
from exams.throttling import AutosaveRateThrottle, SubmissionRateThrottle
from .serializers import (
    ExamListSerializer, ExamDetailSerializer, ExamCreateSerializer,
    SessionStateSerializer, AutosaveSerializer, SubmitSerializer, SubmissionResultSerializer,
    GradeEntrySerializer, ReviewAnswerSerializer,
    SubmissionListSerializer, GradingAnswerSerializer, AnswerGradeSerializer,
    BatchGradeSerializer, ScoredSubmissionSerializer, StudentSerializer
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXAMS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List exams",
        description="""
Returns a paginated list of exams.

**Students** see only exams they can take right now: active, inside the
exam window, visible to them and not yet submitted.
**Admins** see every exam.
"""
    ),
    retrieve=extend_schema(
        summary="Get exam details",
        description="Admins get the questions with their correct options; students get the exam summary."
    ),
    create=extend_schema(
        summary="Create exam with questions",
        description="""
Create an exam together with its ordered questions and options in one request.
**Requires the admin role.**

**Question types:**
- `mcq` - at least two options, exactly one marked correct
- `true_false` - exactly the options `True` and `False`, one marked correct
- `open_ended` - no options, graded by hand
""",
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "title": "Python Basics",
                    "description": "Variables, loops and functions",
                    "duration_minutes": 30,
                    "start_date": "2026-01-15T09:00:00Z",
                    "end_date": "2026-01-15T18:00:00Z",
                    "visibility": "all",
                    "questions": [
                        {
                            "question_type": "mcq",
                            "text": "Which keyword defines a function?",
                            "points": 2,
                            "options": [
                                {"text": "def", "is_correct": True},
                                {"text": "func", "is_correct": False},
                                {"text": "lambda", "is_correct": False}
                            ]
                        },
                        {
                            "question_type": "true_false",
                            "text": "Python lists are immutable.",
                            "points": 1,
                            "options": [
                                {"text": "True", "is_correct": False},
                                {"text": "False", "is_correct": True}
                            ]
                        },
                        {
                            "question_type": "open_ended",
                            "text": "Explain what a loop is.",
                            "points": 5
                        }
                    ]
                },
                request_only=True
            )
        ]
    ),
    update=extend_schema(
        summary="Update exam",
        description="Edit exam settings. Questions can only be replaced while nobody has started the exam."
    ),
    partial_update=extend_schema(summary="Partially update exam"),
    destroy=extend_schema(summary="Delete exam", description="Delete an exam and its submissions. **Requires the admin role.**")
)
@extend_schema(tags=['Exams'])
class ExamViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing exams.

    Exams hold ordered questions and define the time limit and the window in
    which students may take them.
    """
    permission_classes = [IsAuthenticated, IsAdminOrReadOnly]
    filterset_fields = ['is_active', 'visibility']
    search_fields = ['title', 'description']
    ordering_fields = ['title', 'created_at', 'start_date', 'duration_minutes']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Exam.objects.none()
        if is_admin(self.request.user):
            return Exam.objects.select_related('created_by').prefetch_related(
                Prefetch('questions__options', queryset=QuestionOption.objects.order_by('order_index', 'id'))
            ).order_by('-created_at')
        return Gradebook(self.request.user).available_exams()

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return ExamCreateSerializer
        if self.action == 'retrieve' and is_admin(self.request.user):
            return ExamDetailSerializer
        return ExamListSerializer

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    @extend_schema(
        summary="Activate or deactivate exam",
        request=None,
        responses={200: ExamListSerializer, 403: OpenApiResponse(description="Permission denied")}
    )
    @action(detail=True, methods=['post'], url_path='toggle-active', permission_classes=[IsAuthenticated, IsAdminRole])
    def toggle_active(self, request, pk=None):
        exam = self.get_object()
        ExamAuthoringService.set_active(exam, not exam.is_active)
        return Response(ExamListSerializer(exam, context={'request': request}).data)

    @extend_schema(
        summary="Start or resume exam",
        description="""
Open the caller's attempt at this exam.

The first call creates the submission and starts the clock; later calls
resume it with the saved answers and the time left.

**Errors:**
- `404` exam missing, inactive or not assigned to you
- `403` with code `not_yet_available` or `expired` outside the exam window
- `409` with code `already_submitted` once the exam has been submitted
""",
        tags=['Exam Session'],
        request=None,
        responses={
            201: SessionStateSerializer,
            200: SessionStateSerializer,
            403: OpenApiResponse(description="Exam not yet available or expired"),
            404: OpenApiResponse(description="Exam not found"),
            409: OpenApiResponse(description="Already submitted")
        }
    )
    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated])
    def session(self, request, pk=None):
        session = ExamSession.start_or_resume(pk, request.user.id)

        AuditLog.log(
            event_type=AuditLog.EventType.EXAM_RESUME if session.resumed else AuditLog.EventType.EXAM_START,
            description=f"{'Resumed' if session.resumed else 'Started'}: {session.exam.title}",
            request=request,
            user=request.user,
            metadata={'exam_id': session.exam.id, 'submission_id': session.submission_id}
        )
        return Response(
            SessionStateSerializer(session, context={'request': request}).data,
            status=status.HTTP_200_OK if session.resumed else status.HTTP_201_CREATED
        )


# =============================================================================
# EXAM SESSION
# =============================================================================

@extend_schema(tags=['Exam Session'])
class SubmissionViewSet(viewsets.GenericViewSet):
    """
    Answer saving and submission for an open attempt.

    The session is rebuilt from stored state on every request, so the server
    clock decides how much time is left.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = SubmitSerializer

    def _session(self, pk):
        return ExamSession.for_submission(pk, student_id=self.request.user.id)

    def _record(self, session, answers):
        for answer in answers:
            value = answer.get('selected_option_id') if 'selected_option_id' in answer else answer.get('answer_text')
            session.record_answer(answer['question_id'], value)

    def _finalize(self, request, session, auto_submit):
        result = session.finalize(auto_submit=auto_submit)
        AuditLog.log(
            event_type=AuditLog.EventType.EXAM_AUTO_SUBMIT if auto_submit else AuditLog.EventType.EXAM_SUBMIT,
            description=f"{'Auto-submitted' if auto_submit else 'Submitted'}: {session.exam.title}",
            request=request,
            user=request.user,
            metadata={
                'exam_id': session.exam.id,
                'submission_id': result.submission_id,
                'time_taken_minutes': result.time_taken_minutes
            }
        )
        return result

    @extend_schema(
        summary="Autosave answers",
        description="""
Save the answers given so far. Send every answer that changed since the last
save; each one replaces the stored answer for its question.

Objective questions take `selected_option_id`, open-ended ones `answer_text`.

When the time is already up the attempt is submitted automatically with the
answers saved before, and the call fails with code `expired`.
""",
        request=AutosaveSerializer,
        responses={
            200: OpenApiResponse(
                description="Answers saved",
                examples=[OpenApiExample('Success', value={"saved": 2, "remaining_seconds": 1312})]
            ),
            403: OpenApiResponse(description="Time is up"),
            409: OpenApiResponse(description="Already submitted")
        },
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "answers": [
                        {"question_id": 1, "selected_option_id": 3},
                        {"question_id": 4, "answer_text": "A loop repeats a block of code."}
                    ]
                },
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['put'], throttle_classes=[AutosaveRateThrottle])
    def answers(self, request, pk=None):
        serializer = AutosaveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = self._session(pk)
        if session.remaining_seconds <= 0:
            self._finalize(request, session, auto_submit=True)
            raise Expired("Time is up. Your exam was submitted automatically.")

        self._record(session, serializer.validated_data['answers'])
        saved = session.flush()
        return Response({'saved': saved, 'remaining_seconds': session.remaining_seconds})

    @extend_schema(
        summary="Submit exam",
        description="""
Finalize the attempt: any answers in the body are saved first, unanswered
questions are recorded as blank, then the exam is scored.

Objective questions are scored at once. Open-ended questions stay pending
until an admin grades them, so `is_graded` is false and `percentage` is not
final while `pending_count` is above zero.

Set `auto_submit` when the client countdown ran out. A submission arriving
after the deadline is treated as an auto-submit and its body answers are
ignored.
""",
        request=SubmitSerializer,
        responses={
            200: SubmissionResultSerializer,
            409: OpenApiResponse(description="Already submitted")
        },
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "answers": [{"question_id": 4, "answer_text": "A loop repeats a block of code."}],
                    "auto_submit": False
                },
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'], throttle_classes=[SubmissionRateThrottle])
    def submit(self, request, pk=None):
        serializer = SubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        session = self._session(pk)
        policy = session_setting('TIMER_POLICY', TIMER_POLICY_SERVER)
        if policy == TIMER_POLICY_CLIENT and 'remaining_seconds' in data:
            session.remaining_seconds = min(session.remaining_seconds, data['remaining_seconds'])

        auto_submit = data['auto_submit']
        if session.remaining_seconds > 0:
            self._record(session, data['answers'])
        else:
            if data['answers']:
                logger.warning(f"Ignoring {len(data['answers'])} late answers for submission {pk}")
            auto_submit = True

        result = self._finalize(request, session, auto_submit)
        return Response(SubmissionResultSerializer(result).data)


# =============================================================================
# STUDENT RESULTS
# =============================================================================

@extend_schema(tags=['Results'])
class MyGradesView(APIView):
    """The caller's submitted exams with their grades."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="My grades",
        description="""
One entry per submitted exam. `letter` and `passed` are only set once every
answer is graded (`is_final`); letter grades are A ≥ 90, B ≥ 80, C ≥ 70,
D ≥ 60, F otherwise.
""",
        responses={200: GradeEntrySerializer(many=True)}
    )
    def get(self, request):
        entries = Gradebook(request.user).grades()
        return Response(GradeEntrySerializer(entries, many=True).data)


@extend_schema(tags=['Results'])
class MySubmissionReviewView(APIView):
    """Per-answer review of one graded submission."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Review my answers",
        description="Only available once the submission is fully graded and the exam allows review.",
        responses={
            200: ReviewAnswerSerializer(many=True),
            403: OpenApiResponse(description="Review not available"),
            404: OpenApiResponse(description="Submission not found")
        }
    )
    def get(self, request, submission_id):
        review = Gradebook(request.user).review(submission_id)
        if review is None:
            return Response(
                {"detail": "Review is not available for this submission."},
                status=status.HTTP_403_FORBIDDEN
            )
        submission, answers = review
        return Response({
            'submission_id': submission.id,
            'exam_title': submission.exam.title,
            'total_score': str(submission.total_score),
            'max_score': str(submission.max_score),
            'percentage': str(submission.percentage),
            'answers': ReviewAnswerSerializer(answers, many=True).data
        })


# =============================================================================
# GRADING
# =============================================================================

@extend_schema(tags=['Grading'])
class GradingSubmissionViewSet(viewsets.GenericViewSet):
    """
    Grading workbench for admins.

    Role checks happen in the workbench, so refused calls are audited.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = SubmissionListSerializer

    def _workbench(self, request):
        return GradingWorkbench(request.user, request=request)

    @extend_schema(
        summary="List submitted exams",
        parameters=[
            OpenApiParameter(
                name='status', type=str, location='query',
                enum=list(GradingWorkbench.FILTERS),
                description='Filter by grading status (default: all)'
            )
        ],
        responses={200: SubmissionListSerializer(many=True)}
    )
    def list(self, request):
        submissions = self._workbench(request).list_submissions(
            request.query_params.get('status', GradingWorkbench.FILTER_ALL)
        )
        page = self.paginate_queryset(submissions)
        if page is not None:
            return self.get_paginated_response(SubmissionListSerializer(page, many=True).data)
        return Response(SubmissionListSerializer(submissions, many=True).data)

    @extend_schema(
        summary="Get submission for grading",
        description="The submission with every answer, the chosen option and the correct option.",
        responses={200: SubmissionListSerializer}
    )
    def retrieve(self, request, pk=None):
        submission, answers = self._workbench(request).load_submission_detail(pk)
        data = SubmissionListSerializer(submission).data
        data['answers'] = GradingAnswerSerializer(answers, many=True).data
        return Response(data)

    @extend_schema(summary="Delete submission", responses={204: None})
    def destroy(self, request, pk=None):
        self._workbench(request).delete_submission(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Grade several answers",
        description="""
Apply scores to several answers of one submission and recompute its totals.
Either every grade is applied or none is: one out-of-range score rejects the
whole batch.
""",
        request=BatchGradeSerializer,
        responses={200: ScoredSubmissionSerializer, 400: OpenApiResponse(description="Invalid points")},
        examples=[
            OpenApiExample(
                'Request Example',
                value={"grades": [{"answer_id": 12, "points_earned": 7, "feedback": "Good, but name an example."}]},
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'])
    def grades(self, request, pk=None):
        serializer = BatchGradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        scored = self._workbench(request).set_answer_grades(pk, serializer.validated_data['grades'])
        return Response(ScoredSubmissionSerializer(scored).data)

    @extend_schema(
        summary="Recompute submission totals",
        description="Recompute totals from the stored answer scores.",
        request=None,
        responses={200: ScoredSubmissionSerializer}
    )
    @action(detail=True, methods=['post'])
    def recompute(self, request, pk=None):
        scored = self._workbench(request).recompute_submission_totals(pk)
        return Response(ScoredSubmissionSerializer(scored).data)

    @extend_schema(
        summary="Auto-grade submission",
        description="Score objective answers again. Answers graded by hand keep their score.",
        request=None,
        responses={200: ScoredSubmissionSerializer}
    )
    @action(detail=True, methods=['post'])
    def rescore(self, request, pk=None):
        scored = self._workbench(request).rescore_submission(pk)
        return Response(ScoredSubmissionSerializer(scored).data)


@extend_schema(tags=['Grading'])
class AnswerGradeView(APIView):
    """Manual grade for a single answer."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Grade answer",
        description="""
Set the score and feedback of one answer. Points must lie between 0 and the
question's points; anything else is rejected, never clamped. The submission
totals are recomputed afterwards.
""",
        request=AnswerGradeSerializer,
        responses={200: GradingAnswerSerializer, 400: OpenApiResponse(description="Invalid points"), 404: dict}
    )
    def patch(self, request, answer_id):
        serializer = AnswerGradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        workbench = GradingWorkbench(request.user, request=request)
        answer = workbench.set_answer_grade(
            answer_id,
            serializer.validated_data['points_earned'],
            serializer.validated_data.get('feedback')
        )
        scored = workbench.recompute_submission_totals(answer.submission_id)

        data = GradingAnswerSerializer(answer).data
        data['submission'] = ScoredSubmissionSerializer(scored).data
        return Response(data)


# =============================================================================
# DASHBOARDS
# =============================================================================

@extend_schema(tags=['Dashboards'])
class AdminDashboardView(APIView):
    """Platform counters for administrators."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Admin dashboard statistics",
        responses={
            200: OpenApiResponse(
                description="Counters and the latest submissions",
                examples=[
                    OpenApiExample(
                        'Response Example',
                        value={
                            "total_students": 42,
                            "total_exams": 6,
                            "active_exams": 4,
                            "pending_grading": 3,
                            "recent_submissions": []
                        }
                    )
                ]
            )
        }
    )
    def get(self, request):
        workbench = GradingWorkbench(request.user, request=request)
        data = workbench.summary()
        data['recent_submissions'] = SubmissionListSerializer(workbench.list_submissions()[:10], many=True).data
        return Response(data)


@extend_schema(tags=['Dashboards'])
class StudentListView(APIView):
    """Students registered on the platform."""
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="List students", responses={200: StudentSerializer(many=True)})
    def get(self, request):
        students = GradingWorkbench(request.user, request=request).list_students()
        return Response(StudentSerializer(students, many=True).data)
