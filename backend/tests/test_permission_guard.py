"""Tests for ticket visibility rules and the status state machine."""

import pytest

from quickdesk.domain.enums import Role, TicketStatus
from quickdesk.domain.errors import ForbiddenError, ValidationError
from quickdesk.domain.models import ActorContext, Comment, Ticket
from quickdesk.engine import PermissionGuard, TransitionResolver
from quickdesk.utils.time import utc_now


def _actor(account_id: str, role: Role) -> ActorContext:
    return ActorContext(
        account_id=account_id,
        subject_id=f"sub-{account_id}",
        email=f"{account_id}@quickdesk.io",
        display_name=account_id,
        role=role,
    )


def _ticket(created_by: str = "creator") -> Ticket:
    now = utc_now()
    return Ticket(
        ticket_id="TKT-1",
        subject="VPN keeps dropping",
        description="Disconnects every ten minutes since Monday.",
        category_id="CAT-1",
        created_by=created_by,
        comments=[
            Comment(comment_id="c1", text="public", author_id="creator", created_at=now),
            Comment(comment_id="c2", text="internal", author_id="agent", is_internal=True, created_at=now),
        ],
        created_at=now,
        updated_at=now,
        last_activity_at=now,
    )


guard = PermissionGuard()


def test_creator_and_staff_can_view_but_other_endusers_cannot():
    ticket = _ticket()

    assert guard.can_view_ticket(_actor("creator", Role.ENDUSER), ticket)
    assert guard.can_view_ticket(_actor("agent", Role.AGENT), ticket)
    assert guard.can_view_ticket(_actor("admin", Role.ADMIN), ticket)
    with pytest.raises(ForbiddenError):
        guard.assert_can_view_ticket(_actor("stranger", Role.ENDUSER), ticket)


def test_redaction_hides_internal_comments_from_endusers_only():
    ticket = _ticket()

    enduser_view = guard.redact_ticket(_actor("creator", Role.ENDUSER), ticket)
    agent_view = guard.redact_ticket(_actor("agent", Role.AGENT), ticket)

    assert [c.comment_id for c in enduser_view.comments] == ["c1"]
    assert [c.comment_id for c in agent_view.comments] == ["c1", "c2"]
    # the stored ticket is untouched
    assert len(ticket.comments) == 2


def test_internal_flag_is_forced_off_for_endusers():
    assert guard.normalize_internal_flag(_actor("u", Role.ENDUSER), True) is False
    assert guard.normalize_internal_flag(_actor("a", Role.AGENT), True) is True
    assert guard.normalize_internal_flag(_actor("a", Role.AGENT), False) is False


def test_list_scope_per_role():
    enduser = _actor("eve", Role.ENDUSER)
    agent = _actor("sam", Role.AGENT)
    admin = _actor("ada", Role.ADMIN)

    assert guard.list_scope(enduser, created_by="someone-else") == {"created_by": "eve"}
    assert guard.list_scope(enduser, assigned_to_me=True) == {"created_by": "eve"}
    assert guard.list_scope(agent) == {}
    assert guard.list_scope(agent, assigned_to_me=True) == {"assigned_to": "sam"}
    assert guard.list_scope(admin, assigned_to_me=True) == {}
    assert guard.list_scope(admin, created_by="eve") == {"created_by": "eve"}


def test_only_staff_manage_ticket_fields():
    assert not guard.can_manage_ticket_fields(_actor("u", Role.ENDUSER))
    assert guard.can_manage_ticket_fields(_actor("a", Role.AGENT))
    assert guard.can_manage_ticket_fields(_actor("b", Role.ADMIN))


@pytest.mark.parametrize("current", [s.value for s in TicketStatus])
@pytest.mark.parametrize("requested", [s.value for s in TicketStatus])
def test_default_table_allows_every_transition(current, requested):
    assert TransitionResolver().resolve(current, requested) == TicketStatus(requested)


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        TransitionResolver().resolve("Open", "Escalated")


def test_custom_table_rejects_missing_pairs():
    resolver = TransitionResolver({
        TicketStatus.OPEN: frozenset({TicketStatus.IN_PROGRESS}),
    })

    assert resolver.resolve("Open", "In Progress") == TicketStatus.IN_PROGRESS
    with pytest.raises(ValidationError) as exc:
        resolver.resolve("Open", "Closed")
    assert exc.value.details == {"from": "Open", "to": "Closed"}


def test_only_resolved_and_closed_stamp_resolution():
    resolver = TransitionResolver()
    assert resolver.stamps_resolution("Resolved")
    assert resolver.stamps_resolution("Closed")
    assert not resolver.stamps_resolution("Open")
    assert not resolver.stamps_resolution("In Progress")
