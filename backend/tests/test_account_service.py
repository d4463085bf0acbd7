"""Tests for identity mapping, roles, activation and directory stats."""

import pytest

from quickdesk.domain.enums import Role, TicketStatus
from quickdesk.domain.errors import (
    AccountNotFoundError, AlreadyExistsError, AuthenticationError, ForbiddenError, ValidationError
)
from quickdesk.services.account_service import AccountService
from quickdesk.utils.identity import VerifiedIdentity


@pytest.fixture
def service() -> AccountService:
    return AccountService()


def test_first_login_creates_enduser_account(service):
    identity = VerifiedIdentity(subject_id="uid-1", email="New.Person@QuickDesk.io", display_name="New Person")

    account = service.resolve_or_create(identity)

    assert account.role == Role.ENDUSER.value
    assert account.is_active is True
    assert account.email == "new.person@quickdesk.io"
    assert account.display_name == "New Person"
    assert account.version == 1


def test_missing_name_falls_back_to_email_local_part(service):
    account = service.resolve_or_create(VerifiedIdentity(subject_id="uid-2", email="kim@quickdesk.io"))
    assert account.display_name == "kim"


def test_repeat_login_refreshes_claims_but_keeps_role(service, agent):
    identity = VerifiedIdentity(
        subject_id=agent.subject_id,
        email="sam.new@quickdesk.io",
        display_name="Samuel Agent",
        avatar_url="https://cdn.quickdesk.io/sam.png",
    )

    account = service.resolve_or_create(identity)

    assert account.account_id == agent.account_id
    assert account.role == Role.AGENT.value
    assert account.email == "sam.new@quickdesk.io"
    assert account.display_name == "Samuel Agent"
    assert account.avatar_url == "https://cdn.quickdesk.io/sam.png"
    assert account.version == agent.version + 1


def test_unchanged_claims_do_not_write(service, enduser):
    identity = VerifiedIdentity(subject_id=enduser.subject_id, email=enduser.email, display_name=enduser.display_name)
    assert service.resolve_or_create(identity).version == enduser.version


def test_new_subject_with_taken_email_is_rejected(service, enduser):
    with pytest.raises(AlreadyExistsError):
        service.resolve_or_create(VerifiedIdentity(subject_id="someone-else", email=enduser.email))


@pytest.mark.parametrize("email", ["not-an-email", "two@@quickdesk.io", "   "])
def test_unusable_email_claim_is_an_authentication_error(service, email):
    with pytest.raises(AuthenticationError):
        service.resolve_or_create(VerifiedIdentity(subject_id="uid-bad", email=email))


def test_known_subject_cannot_switch_to_unusable_email(service, enduser):
    with pytest.raises(AuthenticationError):
        service.resolve_or_create(VerifiedIdentity(subject_id=enduser.subject_id, email="nobody"))

    assert service.account_repo.get_account(enduser.account_id).email == enduser.email


def test_deactivated_account_cannot_authenticate(service, make_account):
    account = make_account(is_active=False)
    identity = VerifiedIdentity(subject_id=account.subject_id, email=account.email, display_name=account.display_name)

    with pytest.raises(AuthenticationError):
        service.authenticate(identity)


def test_update_profile_merges_preferences(service, enduser_actor):
    account = service.update_profile(
        enduser_actor,
        display_name="  Eve Updated  ",
        notification_preferences={"ticket_updates_enabled": False},
    )

    assert account.display_name == "Eve Updated"
    assert account.notification_preferences.email_enabled is True
    assert account.notification_preferences.ticket_updates_enabled is False


def test_update_profile_rejects_blank_name(service, enduser_actor):
    with pytest.raises(ValidationError):
        service.update_profile(enduser_actor, display_name="   ")


def test_change_role(service, admin_actor, enduser):
    account = service.change_role(admin_actor, enduser.account_id, "agent")
    assert account.role == "agent"


def test_change_role_validation_order(service, admin_actor, admin):
    with pytest.raises(ValidationError):
        service.change_role(admin_actor, admin.account_id, "superuser")
    with pytest.raises(ForbiddenError):
        service.change_role(admin_actor, admin.account_id, "agent")
    with pytest.raises(AccountNotFoundError):
        service.change_role(admin_actor, "ACC-missing", "agent")


def test_admin_cannot_deactivate_self(service, admin_actor, admin):
    with pytest.raises(ForbiddenError):
        service.set_activation(admin_actor, admin.account_id, False)


def test_deactivation_unassigns_only_unresolved_tickets(
    service, admin_actor, agent, enduser_actor, make_ticket, ticket_service
):
    open_ticket = make_ticket(enduser_actor, subject="Open ticket one")
    resolved_ticket = make_ticket(enduser_actor, subject="Resolved ticket two")
    for ticket in (open_ticket, resolved_ticket):
        ticket_service.update_ticket(admin_actor, ticket.ticket_id, {"assigned_to": agent.account_id})
    ticket_service.update_ticket(admin_actor, resolved_ticket.ticket_id, {"status": "Resolved"})

    account = service.set_activation(admin_actor, agent.account_id, False)

    assert account.is_active is False
    assert ticket_service.ticket_repo.get_ticket(open_ticket.ticket_id).assigned_to is None
    assert ticket_service.ticket_repo.get_ticket(resolved_ticket.ticket_id).assigned_to == agent.account_id


def test_list_accounts_filters_and_counts(service, admin, agent, enduser, enduser_actor, make_ticket):
    make_ticket(enduser_actor)
    make_ticket(enduser_actor, subject="Second request")

    page = service.list_accounts(role="enduser")

    assert page.total == 1
    assert page.items[0].account.account_id == enduser.account_id
    assert page.items[0].stats.tickets_created == 2
    assert page.items[0].stats.tickets_assigned == 0

    searched = service.list_accounts(search="sam@")
    assert [s.account.account_id for s in searched.items] == [agent.account_id]

    with pytest.raises(ValidationError):
        service.list_accounts(role="owner")


def test_list_accounts_paginates(service, make_account):
    for _ in range(5):
        make_account()

    page = service.list_accounts(page=2, page_size=2)

    assert page.total == 5
    assert page.pages == 3
    assert len(page.items) == 2


def test_get_account_detail_counts(
    service, admin_actor, agent, enduser, enduser_actor, make_ticket, ticket_service
):
    first = make_ticket(enduser_actor)
    make_ticket(enduser_actor, subject="Still waiting here")
    ticket_service.update_ticket(
        admin_actor, first.ticket_id, {"assigned_to": agent.account_id, "status": TicketStatus.RESOLVED.value}
    )

    creator = service.get_account(admin_actor, enduser.account_id)
    assignee = service.get_account(admin_actor, agent.account_id)

    assert creator.stats.tickets_created == 2
    assert creator.stats.open_tickets == 1
    assert creator.stats.resolved_tickets == 1
    assert assignee.stats.tickets_assigned == 1
    assert assignee.stats.resolved_tickets == 1


def test_directory_stats(service, admin, agent, enduser, other_enduser, make_account, make_ticket):
    make_account(is_active=False)
    make_ticket(enduser.to_actor())
    make_ticket(enduser.to_actor(), subject="Another request")
    make_ticket(other_enduser.to_actor())

    stats = service.get_stats()

    assert stats["total"] == 4
    assert stats["by_role"] == {"enduser": 2, "agent": 1, "admin": 1}
    assert stats["recent_registrations"] == 4
    assert [row["account_id"] for row in stats["most_active"]] == [
        enduser.account_id, other_enduser.account_id
    ]
    assert stats["most_active"][0]["ticket_count"] == 2
