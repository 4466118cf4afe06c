"""
Pytest fixtures for stockroom backend tests.

Provides test database setup, store/user/article fixtures, and test client.
"""

from datetime import timedelta

import pytest

from stockroom import create_app
from stockroom.config import TestConfig
from stockroom.extensions import db
from stockroom.models import Article, Sale, SaleLine, Store, User
from stockroom.permissions import Role
from stockroom.services import access_service, notification_service
from stockroom.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def notifications():
    """Collect notifications delivered to subscribers during the test."""
    received = []
    unsubscribe = notification_service.subscribe(received.append)
    yield received
    unsubscribe()


@pytest.fixture(scope='function')
def reject_policy(app, monkeypatch):
    """Switch the negative-stock policy to reject for one test."""
    monkeypatch.setitem(app.config, "STOCK_NEGATIVE_POLICY", "reject")


# =============================================================================
# STORES
# =============================================================================

@pytest.fixture(scope='function')
def store_a(db_session):
    """Create Store A."""
    store = Store(name="Store A", code="A", city="Paris")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Create Store B."""
    store = Store(name="Store B", code="B", city="Lyon")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def closed_store(db_session):
    """Create an inactive store."""
    store = Store(name="Closed Store", code="X", is_active=False)
    db_session.add(store)
    db_session.commit()
    return store


# =============================================================================
# USERS
# =============================================================================

def make_user(db_session, username: str, role: Role, **kwargs) -> User:
    user = User(username=username, full_name=username.title(), role=role.value, **kwargs)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def superadmin(db_session):
    """Global user (role default)."""
    return make_user(db_session, "root", Role.SUPERADMIN)


@pytest.fixture(scope='function')
def manager(db_session, store_a, store_b):
    """Manager assigned to both stores with role defaults (manage_stock, no manage_users)."""
    user = make_user(db_session, "manager", Role.MANAGER)
    access_service.assign_user_to_store(user_id=user.id, store_id=store_a.id, is_primary=True)
    access_service.assign_user_to_store(user_id=user.id, store_id=store_b.id)
    return user


@pytest.fixture(scope='function')
def clerk(db_session, store_a):
    """Sales clerk assigned to Store A (no manage_stock)."""
    user = make_user(db_session, "clerk", Role.SALES)
    access_service.assign_user_to_store(user_id=user.id, store_id=store_a.id)
    return user


@pytest.fixture(scope='function')
def secretary(db_session, store_a):
    """Secretary assigned to Store A (create and edit, no view_reports)."""
    user = make_user(db_session, "secretary", Role.SECRETARY)
    access_service.assign_user_to_store(user_id=user.id, store_id=store_a.id)
    return user


@pytest.fixture(scope='function')
def store_a_manager(db_session, store_a):
    """Manager assigned to Store A only."""
    user = make_user(db_session, "a_manager", Role.MANAGER)
    access_service.assign_user_to_store(user_id=user.id, store_id=store_a.id)
    return user


# =============================================================================
# ARTICLES & SALES
# =============================================================================

@pytest.fixture(scope='function')
def article(db_session):
    """Active article with min_stock 10 and a supplier."""
    article = Article(
        name="Espresso beans",
        unit="bag",
        price_cents=1890,
        purchase_price_cents=1100,
        min_stock=10,
        supplier_name="Roastery Co",
    )
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture(scope='function')
def loose_article(db_session):
    """Active article without a supplier."""
    article = Article(name="Paper cups", unit="pack", price_cents=450, purchase_price_cents=200, min_stock=5)
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture(scope='function')
def retired_article(db_session):
    article = Article(name="Old syrup", min_stock=2, status="inactive")
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture(scope='function')
def sell(db_session):
    """Insert a sale with one line, sold `days_ago` days before now."""
    def _sell(article, quantity, *, store=None, days_ago=1, status="completed", item_type="article"):
        sale = Sale(
            store_id=store.id if store else None,
            status=status,
            sold_at=utcnow() - timedelta(days=days_ago),
        )
        sale.lines.append(SaleLine(article_id=article.id, item_type=item_type, quantity=quantity))
        db_session.add(sale)
        db_session.commit()
        return sale
    return _sell


def auth_headers(user) -> dict:
    """Helper to create X-User-Id headers."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def headers():
    return auth_headers
