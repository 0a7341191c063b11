from django.db import transaction
from rest_framework import serializers
from django.contrib.auth.models import User
from drf_spectacular.utils import extend_schema_field

from exams.identity import is_admin
from exams.models import Exam, Question, QuestionOption, Submission, Answer, UserProfile
from exams.services import ExamAuthoringService


def _display_name(user):
    profile = getattr(user, 'profile', None)
    return profile.display_name if profile else (user.get_full_name() or user.username)


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'full_name']
        read_only_fields = fields

    def get_full_name(self, obj) -> str:
        return _display_name(obj)


class StudentSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source='user.id', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.CharField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = UserProfile
        fields = ['id', 'username', 'email', 'full_name', 'created_at']
        read_only_fields = fields


# =============================================================================
# EXAMS & QUESTIONS
# =============================================================================

class QuestionOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuestionOption
        fields = ['id', 'text', 'is_correct', 'order_index']


class QuestionSerializer(serializers.ModelSerializer):
    options = QuestionOptionSerializer(many=True, read_only=True)

    class Meta:
        model = Question
        fields = ['id', 'question_type', 'text', 'points', 'order_index', 'options']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        if not (request and is_admin(request.user)):
            for option in data['options']:
                option.pop('is_correct', None)
        return data


class ExamListSerializer(serializers.ModelSerializer):
    question_count = serializers.IntegerField(source='get_question_count', read_only=True)
    total_points = serializers.IntegerField(source='get_total_points', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'duration_minutes',
            'start_date', 'end_date', 'is_active', 'allow_review', 'visibility',
            'question_count', 'total_points', 'created_at'
        ]


class ExamDetailSerializer(ExamListSerializer):
    questions = QuestionSerializer(many=True, read_only=True)
    created_by = UserSerializer(read_only=True)
    has_submissions = serializers.BooleanField(read_only=True)

    class Meta(ExamListSerializer.Meta):
        fields = ExamListSerializer.Meta.fields + [
            'assigned_students', 'questions', 'has_submissions', 'created_by', 'updated_at'
        ]


class OptionWriteSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=500)
    is_correct = serializers.BooleanField(default=False)


class QuestionWriteSerializer(serializers.Serializer):
    question_type = serializers.ChoiceField(choices=Question.QuestionType.choices)
    text = serializers.CharField()
    points = serializers.IntegerField(min_value=1, default=1)
    options = OptionWriteSerializer(many=True, required=False, default=list)


class ExamCreateSerializer(serializers.ModelSerializer):
    """Create or edit an exam together with its questions."""
    questions = QuestionWriteSerializer(many=True, required=False)
    assigned_students = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), many=True, required=False
    )

    class Meta:
        model = Exam
        fields = [
            'title', 'description', 'duration_minutes', 'start_date', 'end_date',
            'is_active', 'allow_review', 'visibility', 'assigned_students', 'questions'
        ]

    def validate(self, data):
        start = data.get('start_date', getattr(self.instance, 'start_date', None))
        end = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_date': "End date must be after start date."})
        if self.instance is None and not data.get('questions'):
            raise serializers.ValidationError({'questions': "An exam needs at least one question."})
        return data

    def create(self, validated_data):
        questions = validated_data.pop('questions')
        students = validated_data.pop('assigned_students', [])
        created_by = validated_data.pop('created_by', None)
        return ExamAuthoringService.create_exam(
            validated_data, questions, created_by=created_by, assigned_students=students
        )

    def update(self, instance, validated_data):
        questions = validated_data.pop('questions', None)
        students = validated_data.pop('assigned_students', None)
        with transaction.atomic():
            if questions is not None:
                ExamAuthoringService.replace_questions(instance, questions)
            instance = super().update(instance, validated_data)
            if students is not None:
                instance.assigned_students.set(students)
        return instance

    def to_representation(self, instance):
        return ExamDetailSerializer(instance, context=self.context).data


# =============================================================================
# EXAM SESSION
# =============================================================================

class SessionAnswerSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    selected_option_id = serializers.IntegerField(required=False, allow_null=True)
    answer_text = serializers.CharField(required=False, allow_blank=True, default='')


class SessionStateSerializer(serializers.Serializer):
    """State of an open attempt, as handed to the exam-taking client."""
    submission_id = serializers.IntegerField()
    resumed = serializers.BooleanField()
    started_at = serializers.DateTimeField(source='submission.started_at')
    remaining_seconds = serializers.IntegerField()
    exam = ExamListSerializer()
    questions = QuestionSerializer(many=True)
    answers = serializers.SerializerMethodField()

    @extend_schema_field(SessionAnswerSerializer(many=True))
    def get_answers(self, obj):
        return [
            {
                'question_id': answer.question_id,
                'selected_option_id': answer.selected_option_id,
                'answer_text': answer.answer_text,
            }
            for answer in obj.answers.values()
        ]


def _unique_questions(answers):
    seen = set()
    for answer in answers:
        if answer['question_id'] in seen:
            raise serializers.ValidationError(f"Duplicate answer for question {answer['question_id']}.")
        seen.add(answer['question_id'])
    return answers


class AutosaveSerializer(serializers.Serializer):
    answers = SessionAnswerSerializer(many=True)

    def validate_answers(self, answers):
        return _unique_questions(answers)


class SubmitSerializer(serializers.Serializer):
    answers = SessionAnswerSerializer(many=True, required=False, default=list)
    auto_submit = serializers.BooleanField(default=False)
    remaining_seconds = serializers.IntegerField(
        required=False, min_value=0,
        help_text="Client countdown; only used when the server runs the client timer policy"
    )

    def validate_answers(self, answers):
        return _unique_questions(answers)


class SubmissionResultSerializer(serializers.Serializer):
    submission_id = serializers.IntegerField()
    submitted_at = serializers.DateTimeField()
    time_taken_minutes = serializers.IntegerField()
    auto_submitted = serializers.BooleanField()
    total_score = serializers.DecimalField(source='scored.total_score', max_digits=7, decimal_places=2)
    max_score = serializers.DecimalField(source='scored.max_score', max_digits=7, decimal_places=2)
    percentage = serializers.DecimalField(source='scored.percentage', max_digits=5, decimal_places=2)
    is_graded = serializers.BooleanField(source='scored.is_graded')
    pending_count = serializers.IntegerField(source='scored.pending_count')


# =============================================================================
# STUDENT RESULTS
# =============================================================================

class GradeEntrySerializer(serializers.Serializer):
    submission_id = serializers.IntegerField(source='submission.id')
    exam_id = serializers.IntegerField(source='submission.exam_id')
    exam_title = serializers.CharField(source='submission.exam.title')
    submitted_at = serializers.DateTimeField(source='submission.submitted_at')
    total_score = serializers.DecimalField(source='submission.total_score', max_digits=7, decimal_places=2)
    max_score = serializers.DecimalField(source='submission.max_score', max_digits=7, decimal_places=2)
    percentage = serializers.SerializerMethodField()
    is_final = serializers.BooleanField()
    letter = serializers.CharField()
    passed = serializers.BooleanField()
    can_review = serializers.BooleanField()

    @extend_schema_field(serializers.DecimalField(max_digits=5, decimal_places=2, allow_null=True))
    def get_percentage(self, obj):
        # not meaningful until every answer has a score
        return str(obj.submission.percentage) if obj.is_final else None


class ReviewAnswerSerializer(serializers.ModelSerializer):
    question_text = serializers.CharField(source='question.text', read_only=True)
    question_type = serializers.CharField(source='question.question_type', read_only=True)
    max_points = serializers.IntegerField(source='question.points', read_only=True)
    selected_option_text = serializers.CharField(read_only=True, allow_null=True)
    correct_option_text = serializers.CharField(read_only=True, allow_null=True)

    class Meta:
        model = Answer
        fields = [
            'id', 'question', 'question_text', 'question_type', 'max_points',
            'answer_text', 'selected_option', 'selected_option_text', 'correct_option_text',
            'points_earned', 'is_correct', 'feedback'
        ]
        read_only_fields = fields


# =============================================================================
# GRADING
# =============================================================================

class SubmissionListSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    student_name = serializers.SerializerMethodField()
    grading_state = serializers.CharField(read_only=True)

    class Meta:
        model = Submission
        fields = [
            'id', 'exam', 'exam_title', 'student', 'student_name',
            'started_at', 'submitted_at', 'time_taken_minutes',
            'total_score', 'max_score', 'percentage', 'is_graded', 'grading_state', 'graded_at'
        ]
        read_only_fields = fields

    def get_student_name(self, obj) -> str:
        return _display_name(obj.student)


class GradingAnswerSerializer(ReviewAnswerSerializer):
    class Meta(ReviewAnswerSerializer.Meta):
        fields = ReviewAnswerSerializer.Meta.fields + ['grading_method', 'graded_by', 'graded_at']
        read_only_fields = fields


class AnswerGradeSerializer(serializers.Serializer):
    points_earned = serializers.DecimalField(max_digits=6, decimal_places=2)
    feedback = serializers.CharField(required=False, allow_blank=True)


class AnswerGradeItemSerializer(AnswerGradeSerializer):
    answer_id = serializers.IntegerField()


class BatchGradeSerializer(serializers.Serializer):
    grades = AnswerGradeItemSerializer(many=True, allow_empty=False)


class ScoredSubmissionSerializer(serializers.Serializer):
    submission_id = serializers.IntegerField()
    total_score = serializers.DecimalField(max_digits=7, decimal_places=2)
    max_score = serializers.DecimalField(max_digits=7, decimal_places=2)
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    is_graded = serializers.BooleanField()
    is_final = serializers.BooleanField()
    pending_count = serializers.IntegerField()
