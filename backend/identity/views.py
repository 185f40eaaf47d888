import logging

from django.contrib.auth import get_user_model
from django.contrib.auth.models import update_last_login
from rest_framework import generics
from rest_framework.decorators import action
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from auditlog.services.audit import record, request_context, snapshot
from common.exceptions import Forbidden, ValidationFailed
from common.ids import UUID_RE
from common.mixins import ScopedModelViewSet
from common.permissions import IsSelfOrAdmin, RolePolicy
from common.responses import created, ok

from .serializers import (
    AdminUserCreateSerializer,
    ChangePasswordSerializer,
    LoginSerializer,
    ProfileSerializer,
    RegisterSerializer,
    UserSerializer,
    UserUpdateSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)

USER_AUDIT_FIELDS = ("email", "username", "first_name", "last_name", "phone_number", "role", "is_active")


def _tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


class RegisterView(generics.CreateAPIView):
    """
    API endpoint for user registration.
    """
    queryset = User.objects.all()
    permission_classes = (AllowAny,)  # Allow any user (authenticated or not) to access this endpoint.
    authentication_classes = ()
    serializer_class = RegisterSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        record(
            action="REGISTER",
            description=f"New user registered: {user.email}",
            entity_type="user",
            entity_id=user.pk,
            new_value=snapshot(user, USER_AUDIT_FIELDS),
            performed_by=user,
            context=request_context(request),
        )
        return created(
            {"user": UserSerializer(user).data, **_tokens_for(user)},
            message="User registered successfully",
        )


class LoginView(APIView):
    """
    Email + password in, token pair out. Deactivated accounts get 403
    rather than the generic 401 so the client can tell them apart.
    """
    permission_classes = (AllowAny,)
    authentication_classes = ()

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"]

        user = User.objects.filter(email__iexact=email).first()
        if user is None or not user.check_password(serializer.validated_data["password"]):
            logger.info("Failed login for %s", email)
            raise AuthenticationFailed("Invalid email or password.")
        if not user.is_active:
            raise Forbidden("Account is deactivated. Please contact an administrator.")

        update_last_login(None, user)
        record(
            action="LOGIN",
            description=f"User logged in: {user.email}",
            entity_type="user",
            entity_id=user.pk,
            performed_by=user,
            context=request_context(request),
        )
        return ok({"user": UserSerializer(user).data, **_tokens_for(user)}, message="Login successful")


class MeView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        return ok({"user": UserSerializer(request.user).data})

    def put(self, request):
        user = request.user
        old = snapshot(user, ProfileSerializer.Meta.fields)
        serializer = ProfileSerializer(user, data=request.data, partial=True, context={"request": request})
        serializer.is_valid(raise_exception=True)
        serializer.save()
        record(
            action="UPDATE_PROFILE",
            description=f"Profile updated: {user.email}",
            entity_type="user",
            entity_id=user.pk,
            old_value=old,
            new_value=snapshot(user, ProfileSerializer.Meta.fields),
            performed_by=user,
            context=request_context(request),
        )
        return ok({"user": serializer.data}, message="Profile updated successfully")


class ChangePasswordView(APIView):
    permission_classes = (IsAuthenticated,)

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.set_password(serializer.validated_data["new_password"])
        user.save(update_fields=["password"])
        record(
            action="CHANGE_PASSWORD",
            description=f"Password changed: {user.email}",
            entity_type="user",
            entity_id=user.pk,
            performed_by=user,
            context=request_context(request),
        )
        return ok(message="Password changed successfully")


class LogoutView(APIView):
    """Tokens are stateless; this only leaves a trace in the audit log."""
    permission_classes = (IsAuthenticated,)

    def post(self, request):
        record(
            action="LOGOUT",
            description=f"User logged out: {request.user.email}",
            entity_type="user",
            entity_id=request.user.pk,
            performed_by=request.user,
            context=request_context(request),
        )
        return ok(message="Logged out successfully")


class UserViewSet(ScopedModelViewSet):
    """
    /api/users

    Reads and stats are open to any authenticated user. Create, deactivate
    (DELETE) and activate are admin only; update is self-or-admin and is
    refused before the payload is looked at.
    """
    queryset = User.objects.all()
    permission_classes = (RolePolicy, IsSelfOrAdmin)
    lookup_value_regex = UUID_RE
    filterset_fields = ("role", "is_active")
    search_fields = ("email", "username", "first_name", "last_name")
    ordering_fields = ("email", "first_name", "last_name", "date_joined", "role")
    default_ordering = ("-date_joined",)
    http_method_names = ["get", "post", "put", "patch", "delete", "head", "options"]
    policy_map = {
        "create": "user.create",
        "destroy": "user.deactivate",
        "activate": "user.activate",
    }

    def get_serializer_class(self):
        if self.action == "create":
            return AdminUserCreateSerializer
        if self.action in ("update", "partial_update"):
            return UserUpdateSerializer
        return UserSerializer

    def _log(self, action_name, user, description, old=None, new=None):
        record(
            action=action_name,
            description=description,
            entity_type="user",
            entity_id=user.pk,
            old_value=old,
            new_value=new,
            performed_by=self.request.user,
            context=request_context(self.request),
        )

    def perform_create(self, serializer):
        user = serializer.save()
        self._log("CREATE_USER", user, f"User created: {user.email}", new=snapshot(user, USER_AUDIT_FIELDS))

    def perform_update(self, serializer):
        old = snapshot(serializer.instance, USER_AUDIT_FIELDS)
        user = serializer.save()
        self._log("UPDATE_USER", user, f"User updated: {user.email}", old=old, new=snapshot(user, USER_AUDIT_FIELDS))

    def destroy(self, request, *args, **kwargs):
        user = self.get_object()
        if user.pk == request.user.pk:
            raise ValidationFailed("You cannot deactivate your own account.")
        old = snapshot(user, USER_AUDIT_FIELDS)
        user.is_active = False
        user.save(update_fields=["is_active"])
        self._log("DELETE_USER", user, f"User deactivated: {user.email}", old=old, new={"is_active": False})
        return ok(message="User deactivated successfully")

    @action(detail=True, methods=["patch"])
    def activate(self, request, pk=None):
        user = self.get_object()
        user.is_active = True
        user.save(update_fields=["is_active"])
        self._log("ACTIVATE_USER", user, f"User activated: {user.email}", new={"is_active": True})
        return ok({"user": UserSerializer(user).data}, message="User activated successfully")

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        user = self.get_object()
        return ok({"stats": {
            "projects": user.project_memberships.count(),
            "assignedTasks": user.assigned_tasks.count(),
            "createdTasks": user.created_tasks.count(),
            "documents": user.uploaded_documents.count(),
            "createdProjects": user.created_projects.count(),
        }})
