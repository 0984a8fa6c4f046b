"""Database connection and session management."""
import uuid
from decimal import Decimal
from typing import Generator
import logging

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import DATABASE_URL, SEED_DATABASE
from models import Base, Category, Product, User, UserRole
from passwords import hash_password

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
    """Create an engine, with pool settings for server databases."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,
        pool_timeout=30,
    )


engine = build_engine(DATABASE_URL)

# Objects stay usable after commit; relationships are loaded explicitly
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None, seed: bool = SEED_DATABASE) -> None:
    """Initialize database tables and seed data."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    if not seed:
        return

    db = Session(bind=bind, expire_on_commit=False)
    try:
        if db.scalar(select(User.id).limit(1)) is None:
            seed_catalog(db)
            db.commit()
            logger.info("Seeded database with sample users, categories and products")
    except Exception:
        db.rollback()
        logger.exception("Error occurred while seeding database")
        raise
    finally:
        db.close()


SEED_PASSWORD = "Password123!"

ELECTRONICS_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
CLOTHING_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
BOOKS_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")
HOME_GARDEN_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")
SPORTS_ID = uuid.UUID("eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee")


def seed_catalog(db: Session) -> None:
    """Add sample users, categories and products to the session."""
    password_hash = hash_password(SEED_PASSWORD)
    db.add_all([
        User(id=uuid.UUID("11111111-1111-1111-1111-111111111111"), name="Admin User",
             email="admin@webstore.com", role=UserRole.ADMIN, password_hash=password_hash),
        User(id=uuid.UUID("22222222-2222-2222-2222-222222222222"), name="John Doe",
             email="john.doe@example.com", role=UserRole.CUSTOMER, password_hash=password_hash),
        User(id=uuid.UUID("33333333-3333-3333-3333-333333333333"), name="Jane Smith",
             email="jane.smith@example.com", role=UserRole.CUSTOMER, password_hash=password_hash),
    ])

    db.add_all([
        Category(id=ELECTRONICS_ID, name="Electronics", description="Electronic devices and accessories"),
        Category(id=CLOTHING_ID, name="Clothing", description="Men's and women's clothing"),
        Category(id=BOOKS_ID, name="Books", description="Books and reading materials"),
        Category(id=HOME_GARDEN_ID, name="Home & Garden", description="Home improvement and garden supplies"),
        Category(id=SPORTS_ID, name="Sports & Outdoors", description="Sports equipment and outdoor gear"),
    ])
    # Categories must exist before products reference them
    db.flush()

    products = [
        ("Smartphone Pro Max", "999.99", 50, ELECTRONICS_ID),
        ("Wireless Headphones", "249.99", 100, ELECTRONICS_ID),
        ("Laptop Ultrabook", "1299.99", 30, ELECTRONICS_ID),
        ("Smart Watch", "299.99", 75, ELECTRONICS_ID),
        ("Classic T-Shirt", "19.99", 200, CLOTHING_ID),
        ("Denim Jeans", "79.99", 150, CLOTHING_ID),
        ("Winter Jacket", "149.99", 80, CLOTHING_ID),
        ("Programming Guide", "39.99", 120, BOOKS_ID),
        ("Mystery Novel", "14.99", 200, BOOKS_ID),
        ("Garden Tool Set", "49.99", 60, HOME_GARDEN_ID),
        ("Coffee Maker", "89.99", 40, HOME_GARDEN_ID),
        ("Running Shoes", "119.99", 100, SPORTS_ID),
        ("Yoga Mat", "34.99", 150, SPORTS_ID),
    ]
    db.add_all([
        Product(name=name, price=Decimal(price), stock_quantity=stock, category_id=category_id)
        for name, price, stock, category_id in products
    ])
