"""
Authorization gate shared by every mutation endpoint.

Three layers, always evaluated in this order:

1. Authentication: DRF's IsAuthenticated (default permission class).
   A valid, unexpired bearer token for an active user, else 401.
2. Role: operations listed in ROLE_POLICIES are limited to the global
   roles named there, else 403.
3. Ownership: object-level predicates below (author, author-or-admin,
   self-or-admin, project lead-or-admin), else 403.

Global role (User.role) and project-scoped role (ProjectMember.role) are
different enumerations; project rights never look at User.role except for
the admin override.
"""
from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from rest_framework import permissions
from rest_framework.permissions import BasePermission, SAFE_METHODS

from identity.models import Role

ADMIN_ONLY = frozenset({Role.ADMIN.value})
MANAGERS = frozenset({Role.PROJECT_MANAGER.value, Role.ADMIN.value})

# operation -> global roles allowed to perform it
ROLE_POLICIES: Dict[str, FrozenSet[str]] = {
    "user.create": ADMIN_ONLY,
    "user.deactivate": ADMIN_ONLY,
    "user.activate": ADMIN_ONLY,
    "team.list_managed": MANAGERS,
    "team.my_team": MANAGERS,
    "team.create": MANAGERS,
    "team.update": MANAGERS,
    "team.members": MANAGERS,
    "team.remove_member": MANAGERS,
    "team.available_members": MANAGERS,
    "team.invite": MANAGERS,
    "team.invitations_sent": MANAGERS,
    "team.cancel_invitation": MANAGERS,
}


def roles_for(operation: str) -> Optional[FrozenSet[str]]:
    return ROLE_POLICIES.get(operation)


def has_role_for(user, operation: str) -> bool:
    allowed = roles_for(operation)
    if allowed is None:
        return True
    return bool(user and user.is_authenticated and getattr(user, "role", None) in allowed)


# --------------------------
# Ownership predicates
# --------------------------
def is_admin(user) -> bool:
    return bool(user and user.is_authenticated and getattr(user, "role", None) == Role.ADMIN)


def is_self_or_admin(user, target_user_id) -> bool:
    return is_admin(user) or str(getattr(user, "id", "")) == str(target_user_id)


def is_author(user, obj, field: str = "user_id") -> bool:
    return str(getattr(obj, field, None)) == str(getattr(user, "id", ""))


def is_author_or_admin(user, obj, field: str = "user_id") -> bool:
    return is_admin(user) or is_author(user, obj, field)


def is_project_lead(user, project_id) -> bool:
    from projects.models import ProjectMember, ProjectRole

    if not project_id or not user or not user.is_authenticated:
        return False
    return ProjectMember.objects.filter(
        project_id=project_id, user_id=user.id, role=ProjectRole.LEAD
    ).exists()


def is_project_lead_or_admin(user, project_id) -> bool:
    return is_admin(user) or is_project_lead(user, project_id)


# --------------------------
# Permissions
# --------------------------
class RolePolicy(BasePermission):
    """
    Looks up `view.policy_map[view.action]` in ROLE_POLICIES.
    Actions without an entry are only subject to authentication.
    """
    message = "Your role is not allowed to perform this action."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        operation = (getattr(view, "policy_map", None) or {}).get(getattr(view, "action", None))
        if not operation:
            return True
        return has_role_for(user, operation)


class IsCreatorLeadOrAdmin(BasePermission):
    """
    Writes on project-attached records (task, meeting, document):
    the record's creator, the lead of its project, or an admin.
    """
    message = "Only the creator, the project lead or an admin can modify this record."
    creator_field = "created_by_id"

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        user = request.user
        field = getattr(view, "creator_field", self.creator_field)
        if is_admin(user) or is_author(user, obj, field):
            return True
        return is_project_lead(user, getattr(obj, "project_id", None))


class IsProjectLeadOrAdmin(permissions.BasePermission):
    message = "Only the project lead or an admin can modify this project."

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        return is_project_lead_or_admin(request.user, obj.pk)


class IsSelfOrAdmin(BasePermission):
    """Account edits: the account owner or an admin. Other actions pass through."""
    message = "You can only update your own account."
    guarded_actions = ("update", "partial_update")

    def has_object_permission(self, request, view, obj):
        if getattr(view, "action", None) not in self.guarded_actions:
            return True
        return is_self_or_admin(request.user, obj.pk)
