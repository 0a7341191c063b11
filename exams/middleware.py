"""
Request middleware: security headers and a log line for every exam write.
"""
import logging
import re

from django.conf import settings

logger = logging.getLogger(__name__)

SUBMISSION_WRITE = re.compile(r'^/api/submissions/(?P<submission_id>\d+)/(?P<action>answers|submit)/$')


def get_client_ip(request) -> str:
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


class SecurityHeadersMiddleware:
    """Add security headers to all responses."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        response['X-Frame-Options'] = 'DENY'
        response['X-Content-Type-Options'] = 'nosniff'
        response['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'

        # exam state and grades must never be served from a cache
        if request.path.startswith('/api/') and request.path not in ['/api/docs/', '/api/redoc/', '/api/schema/']:
            response['Cache-Control'] = 'no-store, no-cache, must-revalidate, private'
            response['Pragma'] = 'no-cache'

        if not settings.DEBUG or '/api/docs' not in request.path:
            response['Content-Security-Policy'] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' cdn.jsdelivr.net; "
                "img-src 'self' data: cdn.jsdelivr.net; "
                "frame-ancestors 'none'"
            )

        return response


class SubmissionLoggingMiddleware:
    """Log autosave and submit requests with their outcome."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        match = SUBMISSION_WRITE.match(request.path)
        response = self.get_response(request)

        if match and request.method in ('PUT', 'POST'):
            user = request.user if request.user.is_authenticated else 'anonymous'
            level = logging.INFO if response.status_code < 400 else logging.WARNING
            logger.log(
                level,
                f"SUBMISSION_{match.group('action').upper()} | User: {user} | "
                f"Submission: {match.group('submission_id')} | IP: {get_client_ip(request)} | "
                f"Status: {response.status_code}"
            )
        return response
