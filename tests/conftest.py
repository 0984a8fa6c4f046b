"""Pytest fixtures for store service tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["TELEMETRY_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_DATABASE"] = "false"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["NOTIFICATION_SERVICE_URL"] = ""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, Category, Product, User, UserRole
from passwords import hash_password
from services.token_service import TokenService

PASSWORD = "Password123!"


class FakePipeline:
    """Buffers sorted-set commands and runs them on execute()."""

    def __init__(self, redis_client):
        self.redis = redis_client
        self.commands = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the service uses."""

    def __init__(self):
        self.values = {}
        self.sorted_sets = {}
        self.expirations = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, seconds, value):
        self.values[key] = value
        self.expirations[key] = seconds
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.sorted_sets.pop(key, None) is not None)
        return removed

    def expire(self, key, seconds):
        self.expirations[key] = seconds
        return True

    def zadd(self, key, mapping):
        members = self.sorted_sets.setdefault(key, {})
        added = len([member for member in mapping if member not in members])
        members.update(mapping)
        return added

    def zcard(self, key):
        return len(self.sorted_sets.get(key, {}))

    def zcount(self, key, minimum, maximum):
        return len([s for s in self.sorted_sets.get(key, {}).values() if minimum <= s <= maximum])

    def zremrangebyscore(self, key, minimum, maximum):
        members = self.sorted_sets.get(key, {})
        stale = [member for member, score in members.items() if minimum <= score <= maximum]
        for member in stale:
            del members[member]
        return len(stale)

    def pipeline(self):
        return FakePipeline(self)


class RecordingNotifier:
    """Notification client that records messages instead of sending them."""

    def __init__(self, fail_with=None):
        self.sent = []
        self.fail_with = fail_with

    async def send_notification(self, recipient, subject, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})
        return True


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every connection of one test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def disk_session_factory(tmp_path):
    """Sessions on a database file, each with its own connection."""
    from database import build_engine

    disk_engine = build_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(bind=disk_engine)
    yield sessionmaker(bind=disk_engine, autocommit=False, autoflush=False, expire_on_commit=False)
    disk_engine.dispose()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def notifier():
    return RecordingNotifier()


def make_user(db: Session, email: str, role: UserRole = UserRole.CUSTOMER, name: str = "Test User") -> User:
    user = User(
        id=uuid.uuid4(),
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
    )
    db.add(user)
    db.commit()
    return user


def make_category(db: Session, name: str = "Electronics") -> Category:
    category = Category(id=uuid.uuid4(), name=name, description=f"{name} products")
    db.add(category)
    db.commit()
    return category


def make_product(
    db: Session,
    category: Category,
    name: str,
    price: str = "20.00",
    stock: int = 10,
    is_active: bool = True,
) -> Product:
    product = Product(
        id=uuid.uuid4(),
        name=name,
        price=Decimal(price),
        stock_quantity=stock,
        category_id=category.id,
        is_active=is_active,
    )
    db.add(product)
    db.commit()
    return product


def stock_of(session_factory, product_id) -> int:
    """Read current stock through a separate session."""
    with session_factory() as session:
        return session.get(Product, product_id).stock_quantity


@pytest.fixture
def customer(db):
    return make_user(db, "john.doe@example.com", name="John Doe")


@pytest.fixture
def other_customer(db):
    return make_user(db, "jane.smith@example.com", name="Jane Smith")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=UserRole.ADMIN, name="Admin User")


@pytest.fixture
def category(db):
    return make_category(db)


def bearer(user: User) -> dict:
    token = TokenService().generate_tokens(user).access_token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session_factory, fake_redis, notifier):
    """Test client with the database, Redis and notifier replaced."""
    from main import app
    from database import get_db
    from dependencies import get_notification_client, get_redis

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_notification_client] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()


def interleave_after(monkeypatch, owner, name, competitor):
    """Run ``competitor`` once, right after the first call to ``owner.name`` returns."""
    original = getattr(owner, name)
    pending = [competitor]

    def wrapper(*args, **kwargs):
        result = original(*args, **kwargs)
        if pending:
            pending.pop()()
        return result

    monkeypatch.setattr(owner, name, wrapper)
