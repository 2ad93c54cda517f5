"""Role vocabulary and role checks.

Users carry a list of roles. Several legacy role names are still stored on
older accounts, so the predicates below accept them alongside the current
names.
"""

from enum import Enum
from typing import Iterable, Protocol


class Role(str, Enum):
    """Roles a user account can hold."""

    customer = "customer"
    property_owner = "property_owner"
    car_owner = "car_owner"
    tour_operator = "tour_operator"
    transfer_provider = "transfer_provider"
    admin = "admin"
    # Legacy roles
    creator = "creator"
    vendor = "vendor"
    freelancer = "freelancer"
    client = "client"
    transport_partner = "transport_partner"


CUSTOMER_ROLES = frozenset({Role.customer, Role.client})
VENDOR_ROLES = frozenset({Role.vendor, Role.creator})
TOUR_OPERATOR_ROLES = frozenset({Role.tour_operator, Role.creator})
TRANSFER_PROVIDER_ROLES = frozenset({Role.transfer_provider, Role.transport_partner})
SERVICE_PROVIDER_ROLES = frozenset(
    {
        Role.property_owner,
        Role.car_owner,
        Role.freelancer,
        *VENDOR_ROLES,
        *TOUR_OPERATOR_ROLES,
        *TRANSFER_PROVIDER_ROLES,
    }
)

# Roles a user may not grant themselves at signup
RESTRICTED_SIGNUP_ROLES = frozenset({Role.admin})


class HasRoles(Protocol):
    roles: list[str]


def _normalize(roles: Iterable[str | Role]) -> set[str]:
    return {r.value if isinstance(r, Role) else r for r in roles}


def has_role(user: HasRoles | None, allowed: Iterable[str | Role]) -> bool:
    """True if the user holds any of the allowed roles."""
    if user is None:
        return False
    allowed_set = _normalize(allowed)
    return any(role in allowed_set for role in user.roles)


def has_all_roles(user: HasRoles | None, required: Iterable[str | Role]) -> bool:
    """True if the user holds every required role."""
    if user is None:
        return False
    return _normalize(required).issubset(user.roles)


def is_admin(user: HasRoles | None) -> bool:
    return has_role(user, [Role.admin])


def is_customer(user: HasRoles | None) -> bool:
    return has_role(user, CUSTOMER_ROLES)


def is_vendor(user: HasRoles | None) -> bool:
    return has_role(user, VENDOR_ROLES)


def is_tour_operator(user: HasRoles | None) -> bool:
    return has_role(user, TOUR_OPERATOR_ROLES)


def is_transfer_provider(user: HasRoles | None) -> bool:
    return has_role(user, TRANSFER_PROVIDER_ROLES)


def is_service_provider(user: HasRoles | None) -> bool:
    return has_role(user, SERVICE_PROVIDER_ROLES)
