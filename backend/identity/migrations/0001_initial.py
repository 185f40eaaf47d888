import django.core.validators
import django.utils.timezone
import identity.models
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(default=False, help_text="Designates that this user has all permissions without explicitly assigning them.", verbose_name="superuser status")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("email", models.EmailField(max_length=255, unique=True, verbose_name="email address")),
                ("username", models.CharField(help_text="Required. 3 to 50 letters or digits.", max_length=50, unique=True, validators=[django.core.validators.MinLengthValidator(3), identity.models.username_validator], verbose_name="username")),
                ("first_name", models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(2)], verbose_name="first name")),
                ("last_name", models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(2)], verbose_name="last name")),
                ("phone_number", models.CharField(blank=True, max_length=20, null=True, verbose_name="phone number")),
                ("profile_picture", models.URLField(blank=True, max_length=500, null=True, verbose_name="profile picture")),
                ("role", models.CharField(choices=[("admin", "Admin"), ("project_manager", "Project manager"), ("consultant", "Consultant")], db_index=True, default="consultant", max_length=20)),
                ("is_staff", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now)),
                ("groups", models.ManyToManyField(blank=True, help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.", related_name="identity_user_set", related_query_name="user", to="auth.group", verbose_name="groups")),
                ("user_permissions", models.ManyToManyField(blank=True, help_text="Specific permissions for this user.", related_name="identity_user_set", related_query_name="user", to="auth.permission", verbose_name="user permissions")),
            ],
            options={
                "abstract": False,
            },
            managers=[
                ("objects", identity.models.UserManager()),
            ],
        ),
    ]
