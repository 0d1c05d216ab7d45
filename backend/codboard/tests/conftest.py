"""Pytest configuration for codboard integration tests

WHAT: Shared fixtures for service-level and HTTP endpoint tests
WHY: Every test gets an isolated in-memory database, a seeded business with
     trial billing and default statuses, and a TestClient whose database and
     current-user dependencies point at that business
REFERENCES:
    - codboard/main.py: FastAPI application
    - codboard/database.py: get_db dependency
    - codboard/deps.py: get_current_user dependency
    - codboard/services/business_factory.py: tenant bootstrap
"""

import os
from datetime import date
from decimal import Decimal
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Ensure backend is in path
import sys
from pathlib import Path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment before any codboard module reads it
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared by every connection (TestClient runs in another thread)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from codboard.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def test_business(test_db_session):
    """Business on an active trial with the starter limit and default statuses."""
    from codboard.services.business_factory import create_business_with_trial

    return create_business_with_trial(test_db_session, "Test Business", flush_only=False)


@pytest.fixture
def test_business_b(test_db_session):
    """Second business (for isolation tests)."""
    from codboard.services.business_factory import create_business_with_trial

    return create_business_with_trial(test_db_session, "Test Business B", flush_only=False)


@pytest.fixture
def test_user(test_db_session, test_business):
    from codboard.models import User

    user = User(email="owner@example.com", name="Owner", business_id=test_business.id)
    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)
    return user


@pytest.fixture
def make_product(test_db_session, test_business):
    """Factory: make_product("A1", cost=20) -> Product in test_business."""
    from codboard.models import Product

    def _make(sku, cost="0", price="0", name=None, business=None, is_active=True):
        product = Product(
            business_id=(business or test_business).id,
            name=name or f"Product {sku}",
            sku=sku,
            cost=Decimal(str(cost)),
            price=Decimal(str(price)),
            is_active=is_active,
        )
        test_db_session.add(product)
        test_db_session.commit()
        test_db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_order(test_db_session, test_business):
    """Factory: make_order(date, [(product, qty), ...]) -> Order with line items."""
    from codboard.models import Order, OrderItem

    counter = {"n": 0}

    def _make(order_date: date, items, ad_cost="0", revenue="100", business=None):
        business = business or test_business
        counter["n"] += 1
        order = Order(
            business_id=business.id,
            order_number=f"T-{counter['n']:04d}",
            order_date=order_date,
            customer_name="Customer",
            revenue=Decimal(revenue),
            cost=Decimal("0"),
            shipping_cost=Decimal("0"),
            ad_cost=Decimal(ad_cost),
        )
        for product, quantity in items:
            order.items.append(OrderItem(
                business_id=business.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=Decimal("0"),
                unit_cost=Decimal("0"),
            ))
        test_db_session.add(order)
        test_db_session.commit()
        test_db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def make_campaign(test_db_session, test_business):
    """Factory: make_campaign(date, {product: cost_amount}, total_cost=...) -> AdCampaign.

    Writes cost_amount directly so allocation tests control the exact shares.
    """
    from codboard.models import AdCampaign, AdCampaignProduct, AdPlatformEnum

    def _make(campaign_date: date, costs, total_cost=None, business=None, name=None):
        business = business or test_business
        total = Decimal(str(total_cost)) if total_cost is not None else sum(
            (Decimal(str(v)) for v in costs.values()), Decimal("0")
        )
        campaign = AdCampaign(
            business_id=business.id,
            campaign_date=campaign_date,
            platform=AdPlatformEnum.facebook,
            campaign_name=name,
            total_cost=total,
            is_allocated=False,
        )
        for product, cost_amount in costs.items():
            percentage = (Decimal(str(cost_amount)) * 100 / total) if total else Decimal("0")
            campaign.products.append(AdCampaignProduct(
                product_id=product.id,
                allocation_percentage=percentage,
                cost_amount=Decimal(str(cost_amount)),
            ))
        test_db_session.add(campaign)
        test_db_session.commit()
        test_db_session.refresh(campaign)
        return campaign

    return _make


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, test_user):
    """FastAPI app bound to the test session, authenticated as test_user."""
    from codboard.main import create_app
    from codboard.database import get_db
    from codboard.deps import get_current_user

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_current_user] = lambda: test_user

    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def test_user_token(test_user):
    """Signed access token for test_user (for cookie-auth tests)."""
    from codboard.security import create_access_token

    return create_access_token(test_user.email)
