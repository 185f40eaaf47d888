import io

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from auditlog.models import Log
from identity.models import Role

User = get_user_model()

PASSWORD = "some-strong-password-123"


def make_user(email, role=Role.CONSULTANT, **extra):
    extra.setdefault("first_name", "Test")
    extra.setdefault("last_name", "User")
    return User.objects.create_user(email=email, password=PASSWORD, role=role, **extra)


class UserRegistrationTest(APITestCase):
    """
    Test suite for the user registration endpoint.
    """

    def setUp(self):
        """
        Define the URL for the registration endpoint.
        """
        self.register_url = reverse("auth_register")

    def test_user_registration_success(self):
        """
        Ensure we can create a new user account with valid data.
        """
        data = {
            "email": "testuser@example.com",
            "first_name": "Test",
            "last_name": "User",
            "password": PASSWORD,
            "password2": PASSWORD,
        }
        response = self.client.post(self.register_url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["success"])
        self.assertIn("access", response.data["data"])
        self.assertEqual(User.objects.count(), 1)

        user = User.objects.get()
        self.assertEqual(user.email, data["email"])
        self.assertEqual(user.username, "testuser")
        self.assertEqual(user.role, Role.CONSULTANT)
        self.assertTrue(user.check_password(data["password"]))
        self.assertFalse(user.is_staff)
        self.assertTrue(Log.objects.filter(action="REGISTER", entity_id=str(user.pk)).exists())

    def test_user_registration_cannot_choose_role(self):
        """
        A role in the payload is ignored; self-registration always yields a consultant.
        """
        data = {
            "email": "sneaky@example.com",
            "first_name": "Sneaky",
            "last_name": "User",
            "role": "admin",
            "password": PASSWORD,
            "password2": PASSWORD,
        }
        response = self.client.post(self.register_url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get().role, Role.CONSULTANT)

    def test_user_registration_password_mismatch(self):
        """
        Ensure registration fails if the 'password' and 'password2' fields do not match.
        """
        data = {
            "email": "testuser@example.com",
            "first_name": "Test",
            "last_name": "User",
            "password": PASSWORD,
            "password2": "a-different-password",
        }
        response = self.client.post(self.register_url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(User.objects.count(), 0)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["errors"]["password"], "Password fields didn't match.")

    def test_user_registration_email_already_exists(self):
        """
        Ensure registration fails if the email is already taken.
        """
        make_user("testuser@example.com")

        data = {
            "email": "testuser@example.com",
            "first_name": "New",
            "last_name": "User",
            "password": PASSWORD,
            "password2": PASSWORD,
        }
        response = self.client.post(self.register_url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(User.objects.count(), 1)  # Ensure no new user was created
        self.assertIn("email", response.data["errors"])


class LoginTest(APITestCase):

    def setUp(self):
        self.login_url = reverse("auth_login")
        self.user = make_user("login@example.com")

    def test_login_returns_token_pair(self):
        response = self.client.post(
            self.login_url, {"email": "login@example.com", "password": PASSWORD}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data["data"])
        self.assertIn("refresh", response.data["data"])
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)
        self.assertTrue(Log.objects.filter(action="LOGIN").exists())

    def test_access_token_authenticates_me(self):
        tokens = self.client.post(
            self.login_url, {"email": "login@example.com", "password": PASSWORD}, format="json"
        ).data["data"]

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = self.client.get(reverse("auth_me"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["user"]["email"], "login@example.com")

    def test_wrong_password_is_unauthorized(self):
        response = self.client.post(
            self.login_url, {"email": "login@example.com", "password": "nope-nope-nope"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["success"])

    def test_deactivated_account_is_forbidden(self):
        self.user.is_active = False
        self.user.save()

        response = self.client.post(
            self.login_url, {"email": "login@example.com", "password": PASSWORD}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_me_requires_credentials(self):
        response = self.client.get(reverse("auth_me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data["code"], "not_authenticated")


class ProfileTest(APITestCase):

    def setUp(self):
        self.user = make_user("me@example.com")
        self.client.force_authenticate(user=self.user)

    def test_update_profile(self):
        response = self.client.put(reverse("auth_me"), {"first_name": "Amina", "role": "admin"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, "Amina")
        self.assertEqual(self.user.role, Role.CONSULTANT)
        log = Log.objects.get(action="UPDATE_PROFILE")
        self.assertEqual(log.old_value["first_name"], "Test")
        self.assertEqual(log.new_value["first_name"], "Amina")

    def test_change_password_checks_current(self):
        url = reverse("auth_change_password")
        bad = self.client.post(url, {"current_password": "wrong-one-123", "new_password": "another-pass-456"}, format="json")
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)

        good = self.client.post(url, {"current_password": PASSWORD, "new_password": "another-pass-456"}, format="json")
        self.assertEqual(good.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("another-pass-456"))

    def test_change_password_enforces_min_length(self):
        response = self.client.post(
            reverse("auth_change_password"),
            {"current_password": PASSWORD, "new_password": "short"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("new_password", response.data["errors"])

    def test_logout_is_logged(self):
        response = self.client.post(reverse("auth_logout"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Log.objects.filter(action="LOGOUT", performed_by=self.user).exists())


class UserManagementTest(APITestCase):
    """
    /api/users: admin-only create/deactivate/activate, self-or-admin update.
    """

    def setUp(self):
        self.admin = make_user("admin@example.com", role=Role.ADMIN)
        self.consultant = make_user("consultant@example.com")
        self.other = make_user("other@example.com")

    def test_any_authenticated_user_can_list(self):
        self.client.force_authenticate(user=self.consultant)
        response = self.client.get(reverse("user-list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["count"], 3)

    def test_list_filters_by_role(self):
        self.client.force_authenticate(user=self.consultant)
        response = self.client.get(reverse("user-list"), {"role": "admin"})

        emails = [u["email"] for u in response.data["data"]["results"]]
        self.assertEqual(emails, ["admin@example.com"])

    def test_only_admin_can_create(self):
        payload = {
            "email": "new@example.com", "first_name": "New", "last_name": "Person",
            "role": "project_manager", "password": PASSWORD,
        }
        self.client.force_authenticate(user=self.consultant)
        self.assertEqual(self.client.post(reverse("user-list"), payload, format="json").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(email="new@example.com").role, Role.PROJECT_MANAGER)
        self.assertTrue(Log.objects.filter(action="CREATE_USER").exists())

    def test_user_can_update_self_but_not_role(self):
        self.client.force_authenticate(user=self.consultant)
        url = reverse("user-detail", args=[self.consultant.pk])
        response = self.client.patch(url, {"last_name": "Changed", "role": "admin"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.consultant.refresh_from_db()
        self.assertEqual(self.consultant.last_name, "Changed")
        self.assertEqual(self.consultant.role, Role.CONSULTANT)

    def test_user_cannot_update_someone_else(self):
        self.client.force_authenticate(user=self.consultant)
        url = reverse("user-detail", args=[self.other.pk])
        response = self.client.patch(url, {"last_name": "Hacked"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.other.refresh_from_db()
        self.assertEqual(self.other.last_name, "User")

    def test_admin_can_change_role(self):
        self.client.force_authenticate(user=self.admin)
        url = reverse("user-detail", args=[self.other.pk])
        response = self.client.patch(url, {"role": "project_manager"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.other.refresh_from_db()
        self.assertEqual(self.other.role, Role.PROJECT_MANAGER)
        self.assertTrue(Log.objects.filter(action="UPDATE_USER", entity_id=str(self.other.pk)).exists())

    def test_deactivate_and_activate(self):
        self.client.force_authenticate(user=self.admin)
        detail = reverse("user-detail", args=[self.other.pk])

        response = self.client.delete(detail)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.other.refresh_from_db()
        self.assertFalse(self.other.is_active)
        self.assertTrue(User.objects.filter(pk=self.other.pk).exists())

        response = self.client.patch(reverse("user-activate", args=[self.other.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.other.refresh_from_db()
        self.assertTrue(self.other.is_active)
        self.assertEqual(
            set(Log.objects.filter(entity_id=str(self.other.pk)).values_list("action", flat=True)),
            {"DELETE_USER", "ACTIVATE_USER"},
        )

    def test_consultant_cannot_deactivate(self):
        self.client.force_authenticate(user=self.consultant)
        response = self.client.delete(reverse("user-detail", args=[self.other.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_cannot_deactivate_self(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(reverse("user-detail", args=[self.admin.pk]))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_active)

    def test_invalid_payload_for_someone_else_is_forbidden_not_validated(self):
        self.client.force_authenticate(user=self.consultant)
        url = reverse("user-detail", args=[self.other.pk])
        response = self.client.put(url, {"first_name": "X"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertNotIn("errors", response.json())

    def test_malformed_id_is_not_found(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(f"/api/users/{'-' * 36}")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class UserStatsTest(APITestCase):
    def setUp(self):
        from projects.models import Project, ProjectMember, ProjectRole, Task

        self.owner = make_user("owner@example.com")
        self.viewer = make_user("viewer@example.com")
        project = Project.objects.create(name="Water survey", created_by=self.owner)
        ProjectMember.objects.create(project=project, user=self.owner, role=ProjectRole.LEAD)
        Task.objects.create(project=project, title="Map wells", created_by=self.owner, assigned_to=self.owner)
        Task.objects.create(project=project, title="Report", created_by=self.viewer, assigned_to=self.owner)

    def test_stats_counts(self):
        self.client.force_authenticate(user=self.viewer)
        response = self.client.get(reverse("user-stats", args=[self.owner.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["data"]["stats"], {
            "projects": 1,
            "assignedTasks": 2,
            "createdTasks": 1,
            "documents": 0,
            "createdProjects": 1,
        })

    def test_stats_for_unknown_user(self):
        self.client.force_authenticate(user=self.viewer)
        response = self.client.get(reverse("user-stats", args=["0b7e1c53-5a3c-4f43-a0f1-2c4f0d7d6b1e"]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class MigrationsTest(TestCase):
    def test_models_match_migrations(self):
        out = io.StringIO()
        try:
            call_command("makemigrations", "--check", "--dry-run", stdout=out)
        except SystemExit:
            self.fail(f"Missing migrations:\n{out.getvalue()}")
