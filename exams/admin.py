from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from .models import Exam, Question, QuestionOption, Submission, Answer, AuditLog, UserProfile


class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'


class UserAdmin(BaseUserAdmin):
    inlines = [UserProfileInline]
    list_display = ['username', 'email', 'first_name', 'last_name', 'get_is_admin', 'is_staff']
    list_filter = ['is_staff', 'is_superuser', 'is_active', 'profile__is_admin']

    def get_is_admin(self, obj):
        return obj.profile.is_admin if hasattr(obj, 'profile') else False
    get_is_admin.boolean = True
    get_is_admin.short_description = 'Admin'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ['order_index', 'question_type', 'text', 'points']


class QuestionOptionInline(admin.TabularInline):
    model = QuestionOption
    extra = 2
    fields = ['order_index', 'text', 'is_correct']


class AnswerInline(admin.TabularInline):
    model = Answer
    extra = 0
    readonly_fields = ['question', 'answer_text', 'selected_option', 'points_earned', 'is_correct', 'grading_method']
    fields = readonly_fields + ['feedback']
    can_delete = False


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'is_active', 'visibility', 'duration_minutes', 'start_date', 'end_date', 'created_at']
    list_filter = ['is_active', 'visibility']
    search_fields = ['title', 'description']
    filter_horizontal = ['assigned_students']
    inlines = [QuestionInline]
    readonly_fields = ['created_at', 'updated_at']
    fieldsets = (
        (None, {'fields': ('title', 'description', 'is_active')}),
        ('Schedule', {'fields': ('duration_minutes', 'start_date', 'end_date')}),
        ('Access', {'fields': ('visibility', 'assigned_students', 'allow_review')}),
        ('Metadata', {'fields': ('created_by', 'created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['id', 'exam', 'question_type', 'text_preview', 'points', 'order_index']
    list_filter = ['question_type', 'exam']
    search_fields = ['text']
    inlines = [QuestionOptionInline]

    def text_preview(self, obj):
        return obj.text[:50] + '...' if len(obj.text) > 50 else obj.text
    text_preview.short_description = 'Question'


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = ['id', 'student', 'exam', 'is_submitted', 'is_graded', 'total_score', 'max_score', 'percentage', 'submitted_at']
    list_filter = ['is_submitted', 'is_graded', 'exam']
    search_fields = ['student__username', 'exam__title']
    inlines = [AnswerInline]
    readonly_fields = ['started_at', 'submitted_at', 'graded_at', 'time_taken_minutes']
    fieldsets = (
        (None, {'fields': ('student', 'exam', 'is_submitted')}),
        ('Results', {'fields': ('total_score', 'max_score', 'percentage', 'is_graded')}),
        ('Timestamps', {'fields': ('started_at', 'submitted_at', 'time_taken_minutes', 'graded_at'), 'classes': ('collapse',)}),
    )


@admin.register(Answer)
class AnswerAdmin(admin.ModelAdmin):
    list_display = ['id', 'submission', 'question', 'is_correct', 'points_earned', 'grading_method']
    list_filter = ['is_correct', 'grading_method']
    readonly_fields = ['answered_at', 'graded_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'event_type', 'user', 'ip_address', 'description_preview']
    list_filter = ['event_type', 'created_at']
    search_fields = ['user__username', 'description', 'ip_address']
    readonly_fields = ['user', 'event_type', 'description', 'ip_address', 'user_agent', 'metadata', 'created_at']
    ordering = ['-created_at']

    def description_preview(self, obj):
        return obj.description[:50] + '...' if len(obj.description) > 50 else obj.description
    description_preview.short_description = 'Description'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
