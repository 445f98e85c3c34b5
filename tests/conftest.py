from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pickup_checkout.db as db
import pickup_checkout.main as main_mod
from pickup_checkout.cache import get_cache
from pickup_checkout.main import app
from pickup_checkout.models import Base, Coupon, CouponKind, PickupPoint, Product
from pickup_checkout.routes import limiter
from pickup_checkout.services import window_catalog
from pickup_checkout.services.checkout import (
    BuyerInfo,
    Cart,
    CartItem,
    DeliveryChoice,
    PaymentChoice,
)

# A Saturday morning well in the future, so windows are never in the past
SLOT_START = datetime(2030, 3, 2, 10, 0)

BUYER = BuyerInfo(name="Ann Buyer", email="ann@mailbox.org", phone="+1 212-736-5000")


@pytest.fixture(autouse=True)
def clear_cache():
    """Every test starts with an empty process cache."""
    get_cache().clear()
    yield
    get_cache().clear()


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database.

    Uses StaticPool so all sessions share the same in-memory database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def point(db_session):
    p = PickupPoint(
        name="Central Store",
        address="1 Main St",
        latitude=40.75,
        longitude=-73.99,
        working_schedule={"sat": {"from": "09:00", "to": "18:00"}, "sun": None},
        is_active=True,
    )
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def products(db_session):
    """Two products: an untracked one at 50.00 and a stock-tracked one at 25.00."""
    latte = Product(name="Latte", price=Decimal("50.00"), is_active=True, available_qty=None)
    croissant = Product(name="Croissant", price=Decimal("25.00"), is_active=True, available_qty=10)
    db_session.add_all([latte, croissant])
    db_session.commit()
    db_session.refresh(latte)
    db_session.refresh(croissant)
    return {"latte": latte, "croissant": croissant}


@pytest.fixture
def window(db_session, point):
    """One-hour window with two slots."""
    return window_catalog.create_window(
        db_session,
        point.id,
        SLOT_START,
        SLOT_START + timedelta(hours=1),
        capacity=2,
    )


@pytest.fixture
def make_coupon(db_session):
    """Factory inserting a coupon row directly (no create-time validation)."""

    def _make(
        code="SAVE20",
        kind=CouponKind.PERCENTAGE,
        value="20",
        valid_from=datetime(2020, 1, 1),
        valid_to=datetime(2099, 1, 1),
        usage_limit=0,
        usage_count=0,
        is_active=True,
    ):
        coupon = Coupon(
            code=code,
            kind=kind.value,
            value=Decimal(value),
            valid_from=valid_from,
            valid_to=valid_to,
            usage_limit=usage_limit,
            usage_count=usage_count,
            is_active=is_active,
        )
        db_session.add(coupon)
        db_session.commit()
        db_session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def pickup_cart(products):
    """Cart totalling 100.00 (two lattes at the catalog price)."""

    def _make(quantity=2):
        return Cart(
            items=[CartItem(product_id=products["latte"].id, quantity=quantity)],
            buyer=BUYER,
        )

    return _make


@pytest.fixture
def pickup_choice(point):
    return DeliveryChoice(
        method="PICKUP",
        point_id=point.id,
        pickup_time=SLOT_START + timedelta(minutes=30),
    )


@pytest.fixture
def cash_later():
    return PaymentChoice(method="CASH", pay_later=True)


@pytest.fixture
def client(monkeypatch):
    """Shared FastAPI TestClient using an in-memory SQLite DB.

    Uses StaticPool so all connections share the same in-memory database.
    Rate limiting and the background reaper are disabled.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the db module used by the app
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr(main_mod, "RESERVATION_REAPER_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(limiter, "enabled", False)

    Base.metadata.create_all(bind=engine)

    # Seed catalog products (not managed through this API)
    session = TestingSessionLocal()
    session.add(Product(name="Latte", price=Decimal("50.00"), is_active=True))
    session.add(Product(name="Croissant", price=Decimal("25.00"), is_active=True, available_qty=3))
    session.commit()
    session.close()

    # Override FastAPI DB dependency
    def override_get_db():
        db_sess = TestingSessionLocal()
        try:
            yield db_sess
        finally:
            db_sess.close()

    app.dependency_overrides[db.get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    engine.dispose()
