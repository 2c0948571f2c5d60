"""
Shared fixtures: an in-memory SQLite database per test and a TestClient
wired to it through the get_db dependency.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from catalog.database import Base, get_db, import_models
from catalog.main import app
from catalog.models.category import Category
from catalog.models.product import Product
from catalog.services import auth_service
from catalog.services.rate_limit import InMemoryRateLimitStore

import_models()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """API client backed by the test database (lifespan not run)."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_limit_store = InMemoryRateLimitStore()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    return auth_service.create_user(db, "staff@example.com", "password123")


@pytest.fixture
def auth_headers(user):
    token = auth_service.create_access_token(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def category(db):
    category = Category(name="Hardware", description="Tools and parts")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def make_product(db):
    """Factory for products inserted directly, bypassing the API."""
    def _make(stock=0, name="Widget", category_id=None, price=9.99):
        product = Product(
            name=name,
            description=f"{name} description",
            price=price,
            stock=stock,
            category_id=category_id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make
