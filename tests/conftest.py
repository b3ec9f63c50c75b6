"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import Generator

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from pos_api.database import get_session  # noqa: E402
from pos_api.main import app  # noqa: E402
from pos_api.models import Branch, BranchTable, Company, Product, ProductCategory  # noqa: E402


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite shared by every connection of a single test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    with Session(db_engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_session():
        yield db_session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def pos_setup(db_session: Session) -> dict:
    """A company with two branches, tables and a small menu.

    Returns ids only so tests never hold on to expired instances.
    """
    company = Company(name="Awesome Restaurants Inc")
    other_company = Company(name="Delicious Foods LLC")
    db_session.add_all([company, other_company])
    db_session.flush()

    downtown = Branch(company_id=company.id, name="Downtown Branch")
    uptown = Branch(company_id=company.id, name="Uptown Branch")
    elsewhere = Branch(company_id=other_company.id, name="Harbour Branch")
    db_session.add_all([downtown, uptown, elsewhere])
    db_session.flush()

    t1 = BranchTable(branch_id=downtown.id, table_number="T1", capacity=4)
    t2 = BranchTable(branch_id=downtown.id, table_number="T2", capacity=2)
    u1 = BranchTable(branch_id=uptown.id, table_number="U1", capacity=4)
    beverages = ProductCategory(branch_id=downtown.id, name="Beverages")
    appetizers = ProductCategory(branch_id=downtown.id, name="Appetizers")
    db_session.add_all([t1, t2, u1, beverages, appetizers])
    db_session.flush()

    coffee = Product(
        branch_id=downtown.id,
        category_id=beverages.id,
        name="Coffee",
        sku="DT-BEV-001",
        price=Decimal("2.50"),
    )
    spring_rolls = Product(
        branch_id=downtown.id,
        category_id=appetizers.id,
        name="Spring Rolls",
        sku="DT-APP-001",
        price=Decimal("5.00"),
    )
    seasonal = Product(
        branch_id=downtown.id,
        category_id=appetizers.id,
        name="Seasonal Special",
        price=Decimal("9.90"),
        is_available=False,
    )
    uptown_tea = Product(branch_id=uptown.id, name="Uptown Tea", price=Decimal("3.00"))
    db_session.add_all([coffee, spring_rolls, seasonal, uptown_tea])
    db_session.commit()

    return {
        "company_id": company.id,
        "other_company_id": other_company.id,
        "branch_id": downtown.id,
        "uptown_branch_id": uptown.id,
        "other_branch_id": elsewhere.id,
        "table_id": t1.id,
        "table2_id": t2.id,
        "uptown_table_id": u1.id,
        "category_id": beverages.id,
        "coffee_id": coffee.id,
        "spring_rolls_id": spring_rolls.id,
        "seasonal_id": seasonal.id,
        "uptown_tea_id": uptown_tea.id,
    }


@pytest.fixture
def create_order(client: TestClient, pos_setup: dict):
    """Place an order through the API and return its JSON data."""

    def _create(items=None, table_id="default", **extra):
        if items is None:
            items = [
                {"product_id": pos_setup["coffee_id"], "quantity": 2},
                {"product_id": pos_setup["spring_rolls_id"], "quantity": 1},
            ]
        payload = {"branch_id": pos_setup["branch_id"], "items": items, **extra}
        if table_id == "default":
            payload["table_id"] = pos_setup["table_id"]
        elif table_id is not None:
            payload["table_id"] = table_id
        res = client.post("/orders", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _create
