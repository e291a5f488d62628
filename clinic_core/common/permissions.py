# clinic_core/common/permissions.py

from __future__ import annotations

from typing import Set

from rest_framework.permissions import SAFE_METHODS, BasePermission

# Group/role names (Django auth Group names recommended)
ROLE_ADMIN = "ADMIN"
ROLE_DOCTOR = "DOCTOR"
ROLE_RECEPTION = "RECEPTION"
ROLE_BILLING = "BILLING"
ROLE_READONLY = "READONLY"

ALL_ROLES = {ROLE_ADMIN, ROLE_DOCTOR, ROLE_RECEPTION, ROLE_BILLING, ROLE_READONLY}

BILLING_MANAGERS = {ROLE_ADMIN, ROLE_BILLING, ROLE_DOCTOR, ROLE_RECEPTION}


def _user_roles(user) -> Set[str]:
    """
    Resolve roles from Django groups.

    - Superuser is treated as ADMIN.
    - Authenticated users with no groups are READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(user.groups.values_list("name", flat=True))

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


def actor_id_for(user) -> str:
    """
    Stable actor id written into audit fields (created_by, performed_by...).
    """
    if user is None:
        return ""
    pk = getattr(user, "pk", None)
    if pk is not None:
        return str(pk)
    return str(getattr(user, "username", "") or "")


class CanManageBilling(BasePermission):
    """
    Reads are open to any authenticated user; writes need a billing-capable role.
    """
    message = "You do not have permission to manage billing."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        if request.method in SAFE_METHODS:
            return True

        return bool(_user_roles(user) & BILLING_MANAGERS)
