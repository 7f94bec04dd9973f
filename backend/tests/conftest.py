"""
Pytest fixtures for stockcheck backend tests.

Provides the application on an in-memory database, per-test table wipes,
directory master data (store, users) and a seeded local product catalog.
"""

from decimal import Decimal

import pytest

from stockcheck import create_app
from stockcheck.extensions import db
from stockcheck.models import CatalogProduct, Store, StoreStock, User
from stockcheck.services.assignment_service import init_resolver_cache
from stockcheck.services.catalog_service import init_catalog


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CATALOG_BACKEND': 'sql',
        'LOG_LEVEL': 'WARNING',
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
    """Create fresh database (and fresh caches) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        init_catalog(app)
        init_resolver_cache(app)

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(username: str, profile: str, store_code: str | None = "T01", is_active: bool = True) -> User:
    user = User(
        username=username,
        full_name=username.title(),
        email=f"{username}@stockcheck.local",
        profile=profile,
        store_code=store_code,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    return user


def add_product(
    code: str,
    *,
    division: str = "01",
    category: str = "0101",
    group: str = "010101",
    subgroup: str = "01010101",
    unit_cost: str = "1",
    stock: str | None = None,
    store_code: str = "T01",
) -> CatalogProduct:
    product = CatalogProduct(
        product_code=code,
        barcode=f"750{code}",
        description=f"Product {code}",
        division_code=division,
        division=f"Division {division}",
        category_code=category,
        category=f"Category {category}",
        group_code=group,
        group_name=f"Group {group}",
        subgroup_code=subgroup,
        subgroup=f"Subgroup {subgroup}",
        unit_cost=Decimal(unit_cost),
        unit_price=Decimal(unit_cost) * 2,
        is_blocked=False,
        is_active=True,
    )
    db.session.add(product)
    if stock is not None:
        db.session.add(StoreStock(store_code=store_code, product_code=code, quantity=Decimal(stock)))
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def store(db_session):
    """Create store T01."""
    store = Store(code="T01", name="Tienda Centro", is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def admin(db_session, store):
    return make_user("admin", "ADMINISTRADOR", store_code=None)


@pytest.fixture(scope='function')
def manager(db_session, store):
    return make_user("manager", "GERENTE_TIENDA")


@pytest.fixture(scope='function')
def leader(db_session, store):
    return make_user("leader", "LIDER")


@pytest.fixture(scope='function')
def counter(db_session, store):
    return make_user("counter", "INVENTARIO")


@pytest.fixture(scope='function')
def requester(db_session, store):
    return make_user("requester", "INVENTARIO")


@pytest.fixture(scope='function')
def catalog(db_session, store):
    """
    Seed the local catalog:
    - ABC: division 01 / 0101 / 010101 / 01010101, cost 2.50, stock 10
    - XYZ: division 01 / 0102 / 010201 / 01020101, cost 1.00, stock 5
    - DEF: division 02 / 0201 / 020101 / 02010101, cost 4.00, stock 0
    """
    return {
        "ABC": add_product("ABC", unit_cost="2.50", stock="10.00"),
        "XYZ": add_product(
            "XYZ", category="0102", group="010201", subgroup="01020101", unit_cost="1.00", stock="5"
        ),
        "DEF": add_product(
            "DEF", division="02", category="0201", group="020101", subgroup="02010101", unit_cost="4.00",
        ),
    }


def auth_headers(user: User) -> dict:
    """Helper to create the gateway identity header."""
    return {'X-User-Id': str(user.id)}
