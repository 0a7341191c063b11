"""
Identity gateway: who is calling and whether they are an admin.
"""
import logging
from dataclasses import dataclass

from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from rest_framework.authtoken.models import Token

from exams.exceptions import NotFound, Unauthorized, ValidationError
from exams.models import AuditLog, UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Role:
    is_admin: bool


def is_admin(user) -> bool:
    if user is None or not user.is_authenticated:
        return False
    if user.is_staff:
        return True
    profile = getattr(user, 'profile', None)
    return bool(profile and profile.is_admin)


def require_admin(user, request=None, action=''):
    """Raise ``Unauthorized`` unless ``user`` holds the admin role."""
    if is_admin(user):
        return
    AuditLog.log(
        event_type=AuditLog.EventType.PERMISSION_DENIED,
        description=f"Admin-only action refused: {action}" if action else "Admin-only action refused",
        request=request,
        user=user if user is not None and user.is_authenticated else None,
        metadata={'action': action}
    )
    raise Unauthorized()


class IdentityGateway:
    def __init__(self, request=None):
        self.request = request

    def get_current_user(self):
        user = getattr(self.request, 'user', None)
        if user is None or not user.is_authenticated:
            return None
        return user

    def get_role(self, user_id) -> Role:
        try:
            user = User.objects.select_related('profile').get(pk=user_id)
        except User.DoesNotExist:
            raise NotFound("User not found.")
        return Role(is_admin=is_admin(user))

    def sign_in(self, username, password):
        """Authenticate by username or email. Returns ``(user, token_key)``."""
        if '@' in username:
            match = User.objects.filter(email__iexact=username).first()
            if match:
                username = match.username

        user = authenticate(username=username, password=password)
        if not user:
            disabled = User.objects.filter(username=username, is_active=False).first()
            if disabled and disabled.check_password(password):
                raise Unauthorized("This account is disabled.")
            AuditLog.log(
                event_type=AuditLog.EventType.LOGIN_FAILED,
                description=f"Failed login attempt: {username}",
                request=self.request
            )
            raise ValidationError("Invalid email or password.")

        UserProfile.objects.get_or_create(user=user)
        token, _ = Token.objects.get_or_create(user=user)

        AuditLog.log(
            event_type=AuditLog.EventType.LOGIN,
            description=f"User logged in: {user.username}",
            request=self.request,
            user=user
        )
        logger.info(f"User {user.id} signed in")
        return user, token.key

    def sign_out(self):
        user = self.get_current_user()
        if user is None:
            return
        Token.objects.filter(user=user).delete()
        AuditLog.log(
            event_type=AuditLog.EventType.LOGOUT,
            description=f"User logged out: {user.username}",
            request=self.request,
            user=user
        )
