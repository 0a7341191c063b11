"""
Serializers for sign-in and the current-user payload.
"""
from rest_framework import serializers
from django.contrib.auth.models import User

from exams.identity import is_admin


class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""
    username = serializers.CharField(help_text="Username or email")
    password = serializers.CharField(
        style={'input_type': 'password'},
        help_text="Account password",
        trim_whitespace=False
    )


class CurrentUserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    is_admin = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'full_name', 'is_admin']
        read_only_fields = fields

    def get_full_name(self, obj) -> str:
        profile = getattr(obj, 'profile', None)
        return profile.display_name if profile else (obj.get_full_name() or obj.username)

    def get_is_admin(self, obj) -> bool:
        return is_admin(obj)
