import itertools

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from identity.models import Role

PASSWORD = "Str0ng-pass-123"

_seq = itertools.count(1)


@pytest.fixture
def make_user(db):
    User = get_user_model()

    def _make(role=Role.CONSULTANT, **extra):
        n = next(_seq)
        extra.setdefault("email", f"user{n}@example.com")
        extra.setdefault("username", f"user{n}")
        extra.setdefault("first_name", "Test")
        extra.setdefault("last_name", f"User{n}")
        return User.objects.create_user(password=PASSWORD, role=role, **extra)

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def other_user(make_user):
    return make_user()


@pytest.fixture
def admin_user(make_user):
    return make_user(role=Role.ADMIN)


@pytest.fixture
def manager(make_user):
    return make_user(role=Role.PROJECT_MANAGER)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    """Return an APIClient authenticated as the given user."""
    def _client(u):
        c = APIClient()
        c.force_authenticate(user=u)
        return c
    return _client


@pytest.fixture
def project(user):
    from projects.models import Project, ProjectMember, ProjectRole

    p = Project.objects.create(name="Water access study", created_by=user)
    ProjectMember.objects.create(project=p, user=user, role=ProjectRole.LEAD)
    return p
