import pytest
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from core.database import Base, get_db
from app.main import app
from .factories import bind_factory_session, IngredientFactory, MenuItemFactory
from ..schemas.prep_schemas import PrepCreate, PrepIngredientCreate
from ..services.prep_service import PrepService

SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine
)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    bind_factory_session(db)
    try:
        yield db
    finally:
        db.close()
        bind_factory_session(None)
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def garlic(db_session):
    return IngredientFactory(name="Garlic", name_de="Knoblauch", unit="g", cost_per_unit=Decimal("0.02"))


@pytest.fixture
def coconut_milk(db_session):
    return IngredientFactory(name="Coconut Milk", name_de="Kokosmilch", unit="ml", cost_per_unit=Decimal("0.005"))


@pytest.fixture
def curry_paste(db_session, garlic):
    """Green Curry Paste: 500 ml batch made from 100 g garlic"""
    return PrepService(db_session).create_prep(
        PrepCreate(
            name="Green Curry Paste",
            name_de="Grüne Currypaste",
            batch_yield="500ml",
            batch_yield_amount=Decimal("500"),
            batch_yield_unit="ml",
            ingredients=[
                PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("100"), unit="g")
            ],
        )
    )


@pytest.fixture
def curry_dish(db_session):
    return MenuItemFactory(name="Curry Dish", price=Decimal("14.00"))
