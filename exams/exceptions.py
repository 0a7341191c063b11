"""
Domain errors for the exam-taking and grading workflow.

Every error is a DRF ``APIException`` so the REST layer renders it with the
right status code; ``default_code`` is the stable identifier the UI uses to
decide between redirecting the student and offering a retry.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class ExamError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The exam operation could not be completed."
    default_code = 'exam_error'


class NotFound(ExamError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = 'not_found'


class NotYetAvailable(ExamError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "This exam is not yet available."
    default_code = 'not_yet_available'


class Expired(ExamError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "This exam has expired."
    default_code = 'expired'


class AlreadySubmitted(ExamError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already submitted this exam."
    default_code = 'already_submitted'


class ValidationError(ExamError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = 'validation_error'


class TransientIOError(ExamError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage is temporarily unavailable. Please retry."
    default_code = 'transient_io_error'


class Unauthorized(ExamError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Only admins can perform this action."
    default_code = 'unauthorized'
