"""
Seed Data Script - Creates the bootstrap admin and default categories
Run: python -m scripts.seed_data

Safe to run repeatedly: existing accounts and category names are left alone.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import List

from quickdesk.config.settings import settings
from quickdesk.domain.enums import Role
from quickdesk.domain.models import Account, Category
from quickdesk.repositories import AccountRepository, CategoryRepository, create_indexes
from quickdesk.utils.idgen import generate_account_id, generate_category_id
from quickdesk.utils.time import utc_now


DEFAULT_CATEGORIES = [
    {
        "name": "Technical Support",
        "description": "Issues related to software, hardware, and technical problems",
        "color": "#3B82F6"
    },
    {
        "name": "Account & Billing",
        "description": "Account management, billing, and subscription issues",
        "color": "#10B981"
    },
    {
        "name": "Feature Request",
        "description": "Suggestions for new features or improvements",
        "color": "#8B5CF6"
    },
    {
        "name": "Bug Report",
        "description": "Report software bugs and errors",
        "color": "#EF4444"
    },
    {
        "name": "General Inquiry",
        "description": "General questions and information requests",
        "color": "#6B7280"
    },
]


def seed_admin() -> Account:
    """Create the bootstrap admin, or return the existing one"""
    repo = AccountRepository()

    existing = repo.get_by_subject(settings.bootstrap_admin_subject_id)
    if existing:
        print(f"Admin already exists: {existing.email}")
        return existing

    now = utc_now()
    admin = repo.create_account(Account(
        account_id=generate_account_id(),
        subject_id=settings.bootstrap_admin_subject_id,
        email=settings.bootstrap_admin_email.lower(),
        display_name=settings.bootstrap_admin_name,
        role=Role.ADMIN,
        is_active=True,
        created_at=now,
        updated_at=now,
    ))
    print(f"Created admin: {admin.email}")
    return admin


def seed_categories(created_by: str) -> List[Category]:
    """Create any default category whose name is not taken yet"""
    repo = CategoryRepository()
    created = []

    for data in DEFAULT_CATEGORIES:
        if repo.find_by_name(data["name"]):
            continue
        now = utc_now()
        created.append(repo.create_category(Category(
            category_id=generate_category_id(),
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **data
        )))

    print(f"Created {len(created)} categories")
    return created


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    create_indexes()

    admin = seed_admin()
    seed_categories(admin.account_id)

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
