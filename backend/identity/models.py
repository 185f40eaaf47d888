import uuid
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin, BaseUserManager
from django.core.validators import MinLengthValidator, RegexValidator
from django.db import models
from django.utils.crypto import get_random_string
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Role(models.TextChoices):
    """Global role. Project-scoped roles live on projects.ProjectMember."""
    ADMIN = "admin", _("Admin")
    PROJECT_MANAGER = "project_manager", _("Project manager")
    CONSULTANT = "consultant", _("Consultant")


username_validator = RegexValidator(r"^[A-Za-z0-9]+$", _("Username may only contain letters and digits."))


class UserManager(BaseUserManager):
    """Manager for custom user model with email as the unique identifier."""
    use_in_migrations = True

    def _unique_username(self, email):
        username = "".join(ch for ch in email.split("@")[0] if ch.isalnum()) or "user"
        original_username = username
        while self.model.objects.filter(username=username).exists():
            username = f"{original_username}{get_random_string(4)}"
        return username

    def create_user(self, email, password=None, **extra_fields):
        """Create and save a regular User with the given email and password."""
        if not email:
            raise ValueError(_('The Email must be set'))

        # If username is not provided, generate a unique one from the email.
        if not extra_fields.get('username'):
            extra_fields['username'] = self._unique_username(email)

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password, **extra_fields):
        """Create and save a SuperUser with the given email and password."""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', Role.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_('Superuser must have is_staff=True.'))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_('Superuser must have is_superuser=True.'))
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model where email is the primary identifier.
    Uses UUID for the primary key. Accounts are deactivated, never deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(_('email address'), max_length=255, unique=True)
    username = models.CharField(
        _('username'), max_length=50, unique=True,
        validators=[MinLengthValidator(3), username_validator],
        help_text=_('Required. 3 to 50 letters or digits.'),
    )
    first_name = models.CharField(_('first name'), max_length=100, validators=[MinLengthValidator(2)])
    last_name = models.CharField(_('last name'), max_length=100, validators=[MinLengthValidator(2)])
    phone_number = models.CharField(_('phone number'), max_length=20, blank=True, null=True)
    profile_picture = models.URLField(_('profile picture'), max_length=500, blank=True, null=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CONSULTANT, db_index=True)
    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)
    date_joined = models.DateTimeField(default=timezone.now)

    # Add related_name to resolve clashes with the default User model
    groups = models.ManyToManyField(
        'auth.Group',
        verbose_name=_('groups'),
        blank=True,
        help_text=_(
            'The groups this user belongs to. A user will get all permissions '
            'granted to each of their groups.'
        ),
        related_name="identity_user_set",
        related_query_name="user",
    )
    user_permissions = models.ManyToManyField(
        'auth.Permission',
        verbose_name=_('user permissions'),
        blank=True,
        help_text=_('Specific permissions for this user.'),
        related_name="identity_user_set",
        related_query_name="user",
    )
    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'first_name', 'last_name']

    def __str__(self):
        return self.email

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self):
        return self.role == Role.ADMIN
