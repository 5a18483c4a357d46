"""Fixtures for database-backed tests."""

from types import SimpleNamespace

import pytest

from procureflow.db.repository import SqlAlchemyApprovalRepository, principal_from_user

from tests.factories import create_organization, create_user


@pytest.fixture
def acme(db_session):
    """Committed organisation with one user per role."""
    org = create_organization(db_session, name="Acme Property", slug="acme")
    users = {
        "pm": create_user(db_session, org=org, role="PROPERTY_MANAGER", full_name="Pat PM"),
        "md": create_user(db_session, org=org, role="MD", full_name="Morgan MD"),
        "ceo": create_user(db_session, org=org, role="CEO", full_name="Casey CEO"),
        "accounts": create_user(db_session, org=org, role="ACCOUNTS", full_name="Alex Accounts"),
        "admin": create_user(db_session, org=org, role="ADMIN", full_name="Ari Admin"),
    }
    db_session.commit()
    return SimpleNamespace(
        org=org,
        users=users,
        principals={key: principal_from_user(user) for key, user in users.items()},
    )


@pytest.fixture
def sql_repo(db_session):
    return SqlAlchemyApprovalRepository(db_session)
