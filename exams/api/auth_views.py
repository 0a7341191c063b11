"""
Authentication views: token sign-in, sign-out and the current user.
"""
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiExample, OpenApiResponse

from exams.identity import IdentityGateway
from exams.throttling import AuthRateThrottle
from .auth_serializers import LoginSerializer, CurrentUserSerializer


@extend_schema(
    tags=['Authentication'],
    summary="Login and get auth token",
    description="""
**Sign in with username (or email) and password.**

Returns a token for the `Authorization: Token <key>` header. The `is_admin`
flag tells the client whether to open the admin or the student dashboard.
""",
    request=LoginSerializer,
    responses={
        200: OpenApiResponse(
            description="Login successful",
            examples=[
                OpenApiExample(
                    'Success',
                    value={
                        "token": "9944b09199c62bcf9418ad846dd0e4bbdfc6ee4b",
                        "user": {
                            "id": 1,
                            "username": "student",
                            "email": "student@example.com",
                            "first_name": "Test",
                            "last_name": "Student",
                            "full_name": "Test Student",
                            "is_admin": False
                        }
                    }
                )
            ]
        ),
        400: OpenApiResponse(description="Invalid credentials"),
        403: OpenApiResponse(description="Account disabled")
    }
)
class LoginView(APIView):
    """Login with username/password to get auth token."""
    permission_classes = [AllowAny]
    throttle_classes = [AuthRateThrottle]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user, token = IdentityGateway(request).sign_in(
            serializer.validated_data['username'],
            serializer.validated_data['password']
        )
        return Response({
            "token": token,
            "user": CurrentUserSerializer(user).data
        })


@extend_schema(tags=['Authentication'])
class LogoutView(APIView):
    """Logout and invalidate token."""
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Logout", request=None, responses={200: dict})
    def post(self, request):
        IdentityGateway(request).sign_out()
        return Response({"message": "Logged out successfully."})


@extend_schema(tags=['Authentication'])
class CurrentUserView(APIView):
    """Get the signed-in user and their role."""
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Current user", responses={200: CurrentUserSerializer})
    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)
