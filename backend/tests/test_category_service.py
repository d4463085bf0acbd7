"""Tests for the category registry."""

import pytest

from quickdesk.domain.errors import (
    AlreadyExistsError, CategoryInUseError, CategoryNotFoundError, ForbiddenError, ValidationError
)
from quickdesk.domain.models import DEFAULT_CATEGORY_COLOR
from quickdesk.services.category_service import CategoryService


@pytest.fixture
def service() -> CategoryService:
    return CategoryService()


def test_create_category_defaults(service, admin_actor):
    category = service.create_category(admin_actor, "  Networking  ", description="Wi-Fi, VPN and DNS")

    assert category.name == "Networking"
    assert category.color == DEFAULT_CATEGORY_COLOR
    assert category.is_active is True
    assert category.created_by == admin_actor.account_id


def test_names_are_unique_case_insensitively(service, admin_actor, category):
    with pytest.raises(AlreadyExistsError):
        service.create_category(admin_actor, category.name.upper())


def test_inactive_names_stay_reserved(service, admin_actor, make_category):
    make_category("Legacy Systems", is_active=False)
    with pytest.raises(AlreadyExistsError):
        service.create_category(admin_actor, "legacy systems")


def test_invalid_color_and_name_rejected(service, admin_actor):
    with pytest.raises(ValidationError):
        service.create_category(admin_actor, "Hardware", color="red")
    with pytest.raises(ValidationError):
        service.create_category(admin_actor, "x" * 51)


def test_update_renames_and_bumps_version(service, admin_actor, category):
    updated = service.update_category(admin_actor, category.category_id, {"name": "Tech Support", "color": "#112233"})

    assert updated.name == "Tech Support"
    assert updated.color == "#112233"
    assert updated.version == category.version + 1


def test_rename_to_existing_name_conflicts(service, admin_actor, category, make_category):
    other = make_category("Billing")
    with pytest.raises(AlreadyExistsError):
        service.update_category(admin_actor, other.category_id, {"name": "technical support"})


def test_deactivate_refused_while_unresolved_tickets(service, admin_actor, category, enduser_actor, make_ticket):
    make_ticket(enduser_actor)

    with pytest.raises(CategoryInUseError) as exc:
        service.deactivate_category(admin_actor, category.category_id)
    assert "1 active ticket(s)" in exc.value.message

    with pytest.raises(CategoryInUseError):
        service.update_category(admin_actor, category.category_id, {"is_active": False})


def test_deactivate_allowed_once_tickets_resolved(
    service, admin_actor, category, enduser_actor, make_ticket, ticket_service
):
    ticket = make_ticket(enduser_actor)
    ticket_service.update_ticket(admin_actor, ticket.ticket_id, {"status": "Closed"})

    deactivated = service.deactivate_category(admin_actor, category.category_id)

    assert deactivated.is_active is False
    # the ticket keeps pointing at the inactive category
    assert ticket_service.get_ticket(admin_actor, ticket.ticket_id).category_id == category.category_id


def test_deactivating_inactive_category_is_a_no_op(
    service, admin_actor, category, enduser_actor, make_ticket, ticket_service
):
    ticket = make_ticket(enduser_actor)
    ticket_service.update_ticket(admin_actor, ticket.ticket_id, {"status": "Closed"})
    deactivated = service.deactivate_category(admin_actor, category.category_id)
    ticket_service.update_ticket(admin_actor, ticket.ticket_id, {"status": "Open"})

    again = service.deactivate_category(admin_actor, category.category_id)

    assert again.is_active is False
    assert again.version == deactivated.version


def test_missing_category(service, admin_actor):
    with pytest.raises(CategoryNotFoundError):
        service.deactivate_category(admin_actor, "CAT-missing")


def test_list_hides_inactive_unless_admin_asks(service, admin_actor, enduser_actor, category, make_category):
    make_category("Archived", is_active=False)

    visible = service.list_categories(enduser_actor)
    everything = service.list_categories(admin_actor, include_inactive=True)

    assert [s.category.name for s in visible] == ["Technical Support"]
    assert [s.category.name for s in everything] == ["Archived", "Technical Support"]
    with pytest.raises(ForbiddenError):
        service.list_categories(enduser_actor, include_inactive=True)


def test_category_stats_count_live_tickets(
    service, admin_actor, category, enduser_actor, make_ticket, ticket_service
):
    make_ticket(enduser_actor)
    done = make_ticket(enduser_actor, subject="Already handled")
    ticket_service.update_ticket(admin_actor, done.ticket_id, {"status": "Resolved"})

    summary = service.get_category(category.category_id)
    listed = service.list_categories(admin_actor)[0]

    assert summary.stats.active_tickets == 1
    assert summary.stats.total_tickets == 2
    assert summary.stats.by_status == {"Open": 1, "In Progress": 0, "Resolved": 1, "Closed": 0}
    assert (listed.stats.active_tickets, listed.stats.total_tickets) == (1, 2)


def test_registry_stats(service, admin_actor, category, make_category, enduser_actor, make_ticket):
    billing = make_category("Billing")
    make_category("Old", is_active=False)
    make_ticket(enduser_actor, category_id=billing.category_id)
    make_ticket(enduser_actor, subject="Another bill", category_id=billing.category_id)
    make_ticket(enduser_actor)

    stats = service.get_stats()

    assert stats["total"] == 2
    assert stats["inactive"] == 1
    assert [row["name"] for row in stats["breakdown"]] == ["Billing", "Technical Support"]
    assert stats["breakdown"][0]["ticket_count"] == 2
