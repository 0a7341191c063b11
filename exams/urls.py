from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .api.views import (
    # Dashboards
    AdminDashboardView, StudentListView,
    # Core Resources
    ExamViewSet, SubmissionViewSet,
    # Results
    MyGradesView, MySubmissionReviewView,
    # Grading
    GradingSubmissionViewSet, AnswerGradeView,
)
from .api.auth_views import LoginView, LogoutView, CurrentUserView

# Router for ViewSets
router = DefaultRouter()
router.register(r'exams', ExamViewSet, basename='exam')
router.register(r'submissions', SubmissionViewSet, basename='submission')
router.register(r'grading/submissions', GradingSubmissionViewSet, basename='grading-submission')

urlpatterns = [
    # ============================================
    # AUTHENTICATION
    # ============================================
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
    path('auth/me/', CurrentUserView.as_view(), name='current-user'),

    # ============================================
    # DASHBOARDS
    # ============================================
    path('dashboard/admin/', AdminDashboardView.as_view(), name='admin-dashboard'),
    path('students/', StudentListView.as_view(), name='student-list'),

    # ============================================
    # STUDENT RESULTS
    # ============================================
    path('my-grades/', MyGradesView.as_view(), name='my-grades'),
    path('my-grades/<int:submission_id>/', MySubmissionReviewView.as_view(), name='my-submission-review'),

    # ============================================
    # GRADING
    # ============================================
    path('grading/answers/<int:answer_id>/', AnswerGradeView.as_view(), name='answer-grade'),

    # ============================================
    # CORE API ROUTES (ViewSets)
    # ============================================
    path('', include(router.urls)),
]
