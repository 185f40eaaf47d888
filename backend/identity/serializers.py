from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import Role

User = get_user_model()

PASSWORD_MIN_LENGTH = 8


class UserSerializer(serializers.ModelSerializer):
    """
    Public shape of a user, used by every endpoint that returns one.
    """
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = (
            "id", "email", "username", "first_name", "last_name", "display_name",
            "phone_number", "profile_picture", "role", "is_active",
            "date_joined", "last_login",
        )
        read_only_fields = fields


class UserSummarySerializer(serializers.ModelSerializer):
    """Minimal author/actor identity embedded in other payloads."""
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ("id", "display_name", "email")
        read_only_fields = fields


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(
        write_only=True, required=True, min_length=PASSWORD_MIN_LENGTH, validators=[validate_password]
    )
    password2 = serializers.CharField(
        write_only=True, required=True, label="Confirm Password",
    )
    username = serializers.CharField(required=False, min_length=3, max_length=50)

    class Meta:
        model = User
        fields = ("email", "username", "first_name", "last_name", "phone_number", "password", "password2")
        extra_kwargs = {
            "email": {"required": True},
            "first_name": {"required": True},
            "last_name": {"required": True},
        }

    def validate_username(self, value):
        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError("Username is already taken.")
        return value

    def validate(self, attrs):
        if attrs["password"] != attrs["password2"]:
            raise serializers.ValidationError(
                {"password": "Password fields didn't match."}
            )
        return attrs

    def create(self, validated_data):
        validated_data.pop("password2")
        password = validated_data.pop("password")
        # self-registration never grants more than the default role
        return User.objects.create_user(password=password, role=Role.CONSULTANT, **validated_data)


class AdminUserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(
        write_only=True, required=True, min_length=PASSWORD_MIN_LENGTH, validators=[validate_password]
    )
    username = serializers.CharField(required=False, min_length=3, max_length=50)

    class Meta:
        model = User
        fields = (
            "id", "email", "username", "first_name", "last_name",
            "phone_number", "profile_picture", "role", "password",
        )
        read_only_fields = ("id",)

    def create(self, validated_data):
        password = validated_data.pop("password")
        return User.objects.create_user(password=password, **validated_data)

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class UserUpdateSerializer(serializers.ModelSerializer):
    """
    Self-or-admin update. `role` and `is_active` are silently ignored unless
    the caller is an admin.
    """
    ADMIN_FIELDS = ("role", "is_active")

    class Meta:
        model = User
        fields = ("first_name", "last_name", "phone_number", "profile_picture", "role", "is_active")

    def update(self, instance, validated_data):
        request = self.context.get("request")
        if not (request and getattr(request.user, "is_admin", False)):
            for field in self.ADMIN_FIELDS:
                validated_data.pop(field, None)
        return super().update(instance, validated_data)

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("first_name", "last_name", "phone_number", "profile_picture")

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True, trim_whitespace=False)
    new_password = serializers.CharField(
        write_only=True, min_length=PASSWORD_MIN_LENGTH, trim_whitespace=False
    )

    def validate_current_password(self, value):
        user = self.context["request"].user
        if not user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate(self, attrs):
        validate_password(attrs["new_password"], self.context["request"].user)
        return attrs
