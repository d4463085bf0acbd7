"""
Pytest Configuration and Fixtures

MongoDB is replaced by an in-memory mongomock database per test, uploads
go to a temp directory and ID tokens are replaced by a fake verifier that
reads "<subject>|<email>|<name>" strings.
"""

import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="quickdesk-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["MONGO_DB"] = "quickdesk_test"
os.environ["LOGS_PATH"] = os.path.join(_TEST_ROOT, "logs")
os.environ["ATTACHMENTS_BASE_PATH"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["NOTIFICATION_WORKER_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

import uuid
from typing import Callable, Dict, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from quickdesk.config.settings import settings
from quickdesk.domain.enums import Role
from quickdesk.domain.errors import AuthenticationError
from quickdesk.domain.models import Account, ActorContext, Category, Ticket
from quickdesk.repositories import mongo_client
from quickdesk.repositories.account_repo import AccountRepository
from quickdesk.repositories.category_repo import CategoryRepository
from quickdesk.services.ticket_service import TicketService
from quickdesk.utils.identity import VerifiedIdentity, get_identity_verifier
from quickdesk.utils.idgen import generate_account_id, generate_category_id
from quickdesk.utils.time import utc_now


class FakeIdentityVerifier:
    """Accepts tokens of the form '<subject>|<email>|<name>'"""

    def verify(self, token: str) -> VerifiedIdentity:
        if token.startswith("Bearer "):
            token = token[7:]
        parts = token.split("|")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise AuthenticationError("Invalid token")
        return VerifiedIdentity(
            subject_id=parts[0],
            email=parts[1],
            display_name=parts[2] if len(parts) > 2 and parts[2] else None,
        )


def token_for(account: Account) -> str:
    return f"{account.subject_id}|{account.email}|{account.display_name}"


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture(autouse=True)
def db(monkeypatch, tmp_path):
    """Fresh in-memory database and upload directory for every test"""
    client = mongomock.MongoClient(tz_aware=True)
    database = client[settings.mongo_db]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", database)
    monkeypatch.setattr(settings, "attachments_base_path", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "smtp_host", "")
    mongo_client.create_indexes()
    yield database


@pytest.fixture
def outbox(db):
    """Raw notification outbox collection"""
    return db["notification_outbox"]


# =============================================================================
# Accounts
# =============================================================================

@pytest.fixture
def make_account() -> Callable[..., Account]:
    repo = AccountRepository()

    def _make(
        role: Role = Role.ENDUSER,
        name: Optional[str] = None,
        email: Optional[str] = None,
        is_active: bool = True,
        **prefs: bool
    ) -> Account:
        suffix = uuid.uuid4().hex[:8]
        now = utc_now()
        account = Account(
            account_id=generate_account_id(),
            subject_id=f"subject-{suffix}",
            email=email or f"user-{suffix}@quickdesk.io",
            display_name=name or f"User {suffix}",
            role=role,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        if prefs:
            account.notification_preferences = account.notification_preferences.model_copy(update=prefs)
        return repo.create_account(account)

    return _make


@pytest.fixture
def admin(make_account) -> Account:
    return make_account(Role.ADMIN, name="Ada Admin", email="ada@quickdesk.io")


@pytest.fixture
def agent(make_account) -> Account:
    return make_account(Role.AGENT, name="Sam Agent", email="sam@quickdesk.io")


@pytest.fixture
def enduser(make_account) -> Account:
    return make_account(Role.ENDUSER, name="Eve User", email="eve@quickdesk.io")


@pytest.fixture
def other_enduser(make_account) -> Account:
    return make_account(Role.ENDUSER, name="Olly Other", email="olly@quickdesk.io")


@pytest.fixture
def admin_actor(admin) -> ActorContext:
    return admin.to_actor()


@pytest.fixture
def agent_actor(agent) -> ActorContext:
    return agent.to_actor()


@pytest.fixture
def enduser_actor(enduser) -> ActorContext:
    return enduser.to_actor()


# =============================================================================
# Categories & Tickets
# =============================================================================

@pytest.fixture
def make_category(admin) -> Callable[..., Category]:
    repo = CategoryRepository()

    def _make(name: Optional[str] = None, is_active: bool = True) -> Category:
        now = utc_now()
        return repo.create_category(Category(
            category_id=generate_category_id(),
            name=name or f"Category {uuid.uuid4().hex[:6]}",
            is_active=is_active,
            created_by=admin.account_id,
            created_at=now,
            updated_at=now,
        ))

    return _make


@pytest.fixture
def category(make_category) -> Category:
    return make_category("Technical Support")


@pytest.fixture
def ticket_service() -> TicketService:
    return TicketService()


@pytest.fixture
def make_ticket(ticket_service, category) -> Callable[..., Ticket]:
    def _make(actor: ActorContext, subject: str = "Printer is on fire", **kwargs) -> Ticket:
        return ticket_service.create_ticket(
            actor=actor,
            subject=subject,
            description=kwargs.pop("description", "The office printer started smoking this morning."),
            category_id=kwargs.pop("category_id", category.category_id),
            **kwargs
        )

    return _make


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client():
    from quickdesk.main import app

    app.dependency_overrides[get_identity_verifier] = FakeIdentityVerifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth() -> Callable[[Account], Dict[str, str]]:
    """Authorization header for an account"""
    def _headers(account: Account) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token_for(account)}"}

    return _headers
