"""
Permission Service — role checks for locked fields and role-gated actions.

The platform has one elevated role (``superadmin``). Catalog vehicles lock
their ``year`` and lateral-acceleration fields for everyone else; freshly
entered vehicles stay editable until they are saved to the catalog.

Usage:
    from coursedesk.services.permission_service import can_edit_sensitive_field

    if not can_edit_sensitive_field(role, is_new_entity=entry["is_new"]):
        ...
"""

import logging

from coursedesk.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)

ELEVATED_ROLE = "superadmin"
ADMIN_ROLES = frozenset({"superadmin", "admin"})

# Vehicle fields that only the elevated role may change on catalog vehicles
SENSITIVE_VEHICLE_FIELDS = frozenset({"year", "lat_acc"})


def is_elevated(role: str | None) -> bool:
    return role == ELEVATED_ROLE


def can_edit_sensitive_field(role: str | None, is_new_entity: bool) -> bool:
    """A sensitive field is editable by the elevated role, or by anyone
    while the entity is new (not sourced from, or saved to, the catalog)."""
    return is_elevated(role) or bool(is_new_entity)


def ensure_can_edit_fields(role: str | None, fields, *, is_new_entity: bool, resource: str = "vehicle"):
    """Raise PermissionDeniedError if ``fields`` touch a locked sensitive field."""
    locked = sorted(SENSITIVE_VEHICLE_FIELDS.intersection(fields))
    if locked and not can_edit_sensitive_field(role, is_new_entity):
        logger.warning("Role %s denied edit of %s on existing %s", role, locked, resource)
        raise PermissionDeniedError(
            action=f"edit {', '.join(locked)} of an existing {resource}",
            role=role,
        )
