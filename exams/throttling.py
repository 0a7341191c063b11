from rest_framework.throttling import UserRateThrottle, AnonRateThrottle


class SubmissionRateThrottle(UserRateThrottle):
    """Rate limit for final exam submissions."""
    scope = 'submission'


class AutosaveRateThrottle(UserRateThrottle):
    """Rate limit for periodic answer autosaves."""
    scope = 'autosave'


class AuthRateThrottle(AnonRateThrottle):
    """Rate limit for authentication endpoints to prevent brute force."""
    scope = 'auth'
