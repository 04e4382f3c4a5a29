"""
Pytest fixtures for QuoteMaster backend tests.

Provides an in-memory database, test client, users with session tokens,
and a company + quote for the regular user.
"""

import pytest

from quotemaster import create_app
from quotemaster.extensions import db
from quotemaster.identity import Role
from quotemaster.models import Company, User
from quotemaster.services import quote_service, session_service
from quotemaster.services.auth_service import hash_password


PASSWORD = "Password123!"

# bcrypt is deliberately slow; hash once for every fixture user
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FREE_DOWNLOAD_ALLOWANCE': 1,
        'CURRENCY_LOCALE': 'pt_BR',
        'STRIPE_SECRET_KEY': 'sk_test_dummy',
        'STRIPE_WEBHOOK_SECRET': 'whsec_test_dummy',
        'STRIPE_PRICE_ID': 'price_test_dummy',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("a@b.com", role=Role.ADMIN, free_downloads_used=1)."""
    def _make(email: str, role: Role = Role.USER, **fields) -> User:
        user = User(
            email=email,
            password_hash=PASSWORD_HASH,
            role=role.value,
            free_downloads_used=fields.pop("free_downloads_used", 0),
            has_active_subscription=fields.pop("has_active_subscription", False),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def user(make_user):
    return make_user("ana@example.com", first_name="Ana", last_name="Souza")


@pytest.fixture(scope='function')
def other_user(make_user):
    return make_user("bruno@example.com")


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin@example.com", role=Role.ADMIN)


def get_auth_token(user: User) -> str:
    """Session token for a user without going through bcrypt login."""
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def user_headers(user):
    return auth_headers(get_auth_token(user))


@pytest.fixture(scope='function')
def other_headers(other_user):
    return auth_headers(get_auth_token(other_user))


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(get_auth_token(admin_user))


@pytest.fixture(scope='function')
def company(db_session, user):
    company = Company(name="Festas & Cia", logo_url=None, created_by_user_id=user.id)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def other_company(db_session, other_user):
    company = Company(name="Bruno Eventos", created_by_user_id=other_user.id)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def quote(user, company):
    """Draft quote owned by `user` with one item: 100.00 x (5 needed - 2 owned), 10% off."""
    identity = user.to_identity()
    draft = quote_service.create_quote(identity, {
        "title": "Festa de aniversário",
        "client_name": "Carla",
        "client_email": "carla@example.com",
        "discount": "10",
    })
    quote_service.add_item(identity, draft.id, {
        "description": "Cadeira",
        "unit_price": "100",
        "needed_quantity": 5,
        "owned_quantity": 2,
    })
    return draft
