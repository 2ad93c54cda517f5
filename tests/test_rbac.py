"""Tests for role predicates and role-check dependencies."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from ajira.rbac import (
    Role,
    has_all_roles,
    has_role,
    is_customer,
    is_service_provider,
    is_tour_operator,
    is_transfer_provider,
    is_vendor,
)


def _user(*roles):
    return SimpleNamespace(roles=list(roles))


class TestPredicates:
    def test_anonymous_has_no_roles(self):
        assert not has_role(None, [Role.customer])
        assert not has_all_roles(None, [])

    def test_has_all_roles(self):
        user = _user("vendor", "customer")
        assert has_all_roles(user, [Role.vendor, "customer"])
        assert not has_all_roles(user, [Role.vendor, Role.admin])

    @pytest.mark.parametrize(
        "predicate,legacy_role",
        [
            (is_customer, "client"),
            (is_tour_operator, "creator"),
            (is_transfer_provider, "transport_partner"),
            (is_vendor, "creator"),
        ],
    )
    def test_legacy_roles_accepted(self, predicate, legacy_role):
        assert predicate(_user(legacy_role))

    def test_service_provider(self):
        assert is_service_provider(_user("property_owner"))
        assert is_service_provider(_user("freelancer"))
        assert not is_service_provider(_user("customer"))
        assert not is_service_provider(_user("admin"))


class TestRoleCheckRoutes:
    def test_customer_cannot_create_tour(self, client, auth_headers):
        response = client.post(
            "/api/tours",
            json={
                "title": "Spice farm walk",
                "location": "Zanzibar",
                "price": 40000,
                "duration_days": 1,
                "max_group_size": 12,
            },
            headers=auth_headers,
        )
        assert response.status_code == 403

    def test_customer_cannot_list_vendor_orders(self, client, auth_headers):
        assert client.get("/api/orders", headers=auth_headers).status_code == 403

    def test_admin_passes_every_check(self, client, admin_headers):
        with patch("ajira.routes.orders.list_orders", new_callable=AsyncMock, return_value=[]):
            response = client.get("/api/orders", headers=admin_headers)
        assert response.status_code == 200
