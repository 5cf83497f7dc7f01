import random
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bakery_orders.config.database import get_db
from bakery_orders.core.rate_limit import get_rate_limit_store
from bakery_orders.core.scope import AdminScope, BranchScope, CenterScope
from bakery_orders.core.security import create_access_token, get_password_hash
from bakery_orders.main import app
from bakery_orders.models import (
    Base,
    Branch,
    BranchPriceAdjustment,
    BranchProductAdjustment,
    Center,
    Product,
    User,
    UserRole,
)
from bakery_orders.schemas.order import CarryoverIn, OrderLineIn
from bakery_orders.services.order_service import OrderService

PASSWORD = "s3cret-pass"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db, password_hash):
    """
    Two centers, three branches (one inactive), three products (one
    inactive) and one user per role. Branch "Kadikoy" carries a +10%
    adjustment and a +5 extra on pogaca.
    """
    north = Center(name="Merkez Kuzey")
    south = Center(name="Merkez Guney")
    db.add_all([north, south])
    db.flush()

    kadikoy = Branch(name="Kadikoy", center_id=north.id)
    uskudar = Branch(name="Uskudar", center_id=north.id, is_active=False)
    besiktas = Branch(name="Besiktas", center_id=south.id)
    db.add_all([kadikoy, uskudar, besiktas])
    db.flush()

    su_boregi = Product(code="su_boregi", name="Su Boregi", base_price=Decimal("100"))
    pogaca = Product(code="pogaca", name="Pogaca", base_price=Decimal("200"))
    simit = Product(code="eski_simit", name="Eski Simit", base_price=Decimal("50"), is_active=False)
    db.add_all([su_boregi, pogaca, simit])
    db.flush()

    db.add(BranchPriceAdjustment(branch_id=kadikoy.id, percent=Decimal("10")))
    db.add(BranchProductAdjustment(branch_id=kadikoy.id, product_id=pogaca.id, extra_amount=Decimal("5")))

    users = {
        "admin": User(email="admin@example.com", role=UserRole.ADMIN, password_hash=password_hash),
        "north": User(email="kuzey@example.com", role=UserRole.CENTER, center_id=north.id, password_hash=password_hash),
        "south": User(email="guney@example.com", role=UserRole.CENTER, center_id=south.id, password_hash=password_hash),
        "kadikoy": User(email="kadikoy@example.com", role=UserRole.BRANCH, branch_id=kadikoy.id, password_hash=password_hash),
        "besiktas": User(email="besiktas@example.com", role=UserRole.BRANCH, branch_id=besiktas.id, password_hash=password_hash),
    }
    db.add_all(users.values())
    db.commit()

    return {
        "centers": {"north": north, "south": south},
        "branches": {"kadikoy": kadikoy, "uskudar": uskudar, "besiktas": besiktas},
        "products": {"su_boregi": su_boregi, "pogaca": pogaca, "eski_simit": simit},
        "users": users,
    }


@pytest.fixture
def scopes(seed):
    users = seed["users"]
    return {
        "admin": AdminScope(user_id=users["admin"].id),
        "north": CenterScope(center_id=seed["centers"]["north"].id, user_id=users["north"].id),
        "south": CenterScope(center_id=seed["centers"]["south"].id, user_id=users["south"].id),
        "kadikoy": BranchScope(branch_id=seed["branches"]["kadikoy"].id, user_id=users["kadikoy"].id),
        "besiktas": BranchScope(branch_id=seed["branches"]["besiktas"].id, user_id=users["besiktas"].id),
    }


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + self.step
        return value


@pytest.fixture
def stepping_clock():
    return SteppingClock


@pytest.fixture
def make_order(db, scopes):
    """Create an order through the service; lines are (code, qty) pairs."""
    rng = random.Random(7)

    def factory(scope_name="kadikoy", lines=(("su_boregi", 2),), carryovers=(), clock=None, branch_id=None):
        service = OrderService(db, clock=clock, rng=rng)
        return service.create_order(
            scopes[scope_name],
            branch_id=branch_id,
            delivery_date=datetime(2026, 3, 11).date(),
            delivery_time="07:00",
            items=[OrderLineIn(product_code=code, qty_tray=qty) for code, qty in lines],
            carryovers=[CarryoverIn(product_code=code, qty_kg=qty) for code, qty in carryovers],
        )
    return factory


@pytest.fixture(autouse=True)
def reset_rate_limits():
    get_rate_limit_store.cache_clear()
    yield
    get_rate_limit_store.cache_clear()


@pytest.fixture
def client(session_factory, seed):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seed):
    def headers(user_key):
        user = seed["users"][user_key]
        token = create_access_token({"sub": str(user.id), "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return headers

