from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from .demo_data import DEMO_COMPANIES
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    Branch,
    BranchStaff,
    BranchStatus,
    BranchTable,
    Company,
    Order,
    OrderItem,
    Product,
    ProductCategory,
    TableStatus,
    utcnow,
)

VALID_TABLE_STATUSES = [item.value for item in TableStatus]
VALID_BRANCH_STATUSES = [item.value for item in BranchStatus]


def _save(session: Session, record: SQLModel):
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def _apply_updates(record: SQLModel, updates: dict) -> None:
    """Apply every field present in the request; an explicit null clears the column."""
    columns = type(record).__table__.columns
    for key, value in updates.items():
        if value is None and not columns[key].nullable:
            raise ValidationError(f"{key} cannot be null")
    for key, value in updates.items():
        setattr(record, key, value)
    record.updated_at = utcnow()


def _count(session: Session, statement) -> int:
    return int(session.exec(statement).one() or 0)


def validate_table_status(value: str | None) -> str:
    if not value:
        raise ValidationError("Status is required")
    if value not in VALID_TABLE_STATUSES:
        raise ValidationError("Invalid status. Must be one of: " + ", ".join(VALID_TABLE_STATUSES))
    return value


# -------------------------
# Company operations
# -------------------------

def list_companies(session: Session, *, company_id: int | None = None) -> List[Company]:
    statement = select(Company)
    if company_id is not None:
        statement = statement.where(Company.id == company_id)
    return list(session.exec(statement.order_by(Company.name.asc(), Company.id.asc())))


def get_company(session: Session, company_id: int) -> Company | None:
    return session.get(Company, company_id)


def create_company(session: Session, data: dict) -> Company:
    now = utcnow()
    return _save(session, Company(**data, created_at=now, updated_at=now))


def update_company(session: Session, company: Company, updates: dict) -> Company:
    _apply_updates(company, updates)
    return _save(session, company)


def delete_company(session: Session, company: Company) -> None:
    if _count(session, select(func.count(Branch.id)).where(Branch.company_id == company.id)):
        raise ConflictError("Cannot delete a company that still has branches")
    session.delete(company)
    session.commit()


# -------------------------
# Branch operations
# -------------------------

def list_branches(session: Session, *, company_id: int | None = None) -> List[Branch]:
    statement = select(Branch)
    if company_id is not None:
        statement = statement.where(Branch.company_id == company_id)
    return list(session.exec(statement.order_by(Branch.name.asc(), Branch.id.asc())))


def get_branch(session: Session, branch_id: int, *, company_id: int | None = None) -> Branch | None:
    branch = session.get(Branch, branch_id)
    if branch is None or (company_id is not None and branch.company_id != company_id):
        return None
    return branch


def create_branch(session: Session, data: dict) -> Branch:
    if session.get(Company, data["company_id"]) is None:
        raise NotFoundError("Company not found")
    _check_branch_status(data.get("status"))
    now = utcnow()
    return _save(session, Branch(**data, created_at=now, updated_at=now))


def update_branch(session: Session, branch: Branch, updates: dict) -> Branch:
    _check_branch_status(updates.get("status"))
    _apply_updates(branch, updates)
    return _save(session, branch)


def delete_branch(session: Session, branch: Branch) -> None:
    if _count(session, select(func.count(Order.id)).where(Order.branch_id == branch.id)):
        raise ConflictError("Cannot delete a branch that has orders")
    for model in (BranchStaff, Product, ProductCategory, BranchTable):
        for record in session.exec(select(model).where(model.branch_id == branch.id)).all():
            session.delete(record)
        session.flush()
    session.delete(branch)
    session.commit()


def _check_branch_status(value: str | None) -> None:
    if value is not None and value not in VALID_BRANCH_STATUSES:
        raise ValidationError("Invalid branch status. Must be one of: " + ", ".join(VALID_BRANCH_STATUSES))


# -------------------------
# Table operations
# -------------------------

def list_tables(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
) -> List[BranchTable]:
    statement = select(BranchTable)
    if company_id is not None:
        statement = statement.join(Branch, Branch.id == BranchTable.branch_id).where(Branch.company_id == company_id)
    if branch_id is not None:
        statement = statement.where(BranchTable.branch_id == branch_id)
    if status:
        statement = statement.where(BranchTable.status == status)
    return list(session.exec(statement.order_by(BranchTable.branch_id.asc(), BranchTable.table_number.asc())))


def get_table(session: Session, table_id: int) -> BranchTable | None:
    return session.get(BranchTable, table_id)


def create_table(session: Session, data: dict) -> BranchTable:
    if session.get(Branch, data["branch_id"]) is None:
        raise NotFoundError("Branch not found")
    validate_table_status(data.get("status") or TableStatus.AVAILABLE.value)
    _check_table_number(session, data["branch_id"], data["table_number"])
    now = utcnow()
    return _save(session, BranchTable(**data, created_at=now, updated_at=now))


def update_table(session: Session, table: BranchTable, updates: dict) -> BranchTable:
    if updates.get("status") is not None:
        validate_table_status(updates["status"])
    number = updates.get("table_number")
    if number and number != table.table_number:
        _check_table_number(session, table.branch_id, number)
    _apply_updates(table, updates)
    return _save(session, table)


def delete_table(session: Session, table: BranchTable) -> None:
    if _count(session, select(func.count(Order.id)).where(Order.table_id == table.id)):
        raise ConflictError("Cannot delete a table that has orders")
    session.delete(table)
    session.commit()


def _check_table_number(session: Session, branch_id: int, table_number: str) -> None:
    statement = select(BranchTable).where(
        BranchTable.branch_id == branch_id,
        BranchTable.table_number == table_number,
    )
    if session.exec(statement).first() is not None:
        raise ConflictError("Table number already exists in this branch")


# -------------------------
# Staff operations
# -------------------------

def list_staff(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    role: str | None = None,
    status: str | None = None,
) -> List[BranchStaff]:
    statement = select(BranchStaff)
    if company_id is not None:
        statement = statement.join(Branch, Branch.id == BranchStaff.branch_id).where(Branch.company_id == company_id)
    if branch_id is not None:
        statement = statement.where(BranchStaff.branch_id == branch_id)
    if role:
        statement = statement.where(BranchStaff.role == role)
    if status:
        statement = statement.where(BranchStaff.status == status)
    return list(session.exec(statement.order_by(BranchStaff.created_at.desc(), BranchStaff.id.desc())))


def get_staff(session: Session, staff_id: int, *, company_id: int | None = None) -> BranchStaff | None:
    staff = session.get(BranchStaff, staff_id)
    if staff is None or (company_id is not None and staff.branch.company_id != company_id):
        return None
    return staff


def create_staff(session: Session, data: dict) -> BranchStaff:
    if session.get(Branch, data["branch_id"]) is None:
        raise NotFoundError("Branch not found")
    user_id = data.get("user_id")
    if user_id is not None:
        statement = select(BranchStaff).where(
            BranchStaff.branch_id == data["branch_id"],
            BranchStaff.user_id == user_id,
        )
        if session.exec(statement).first() is not None:
            raise ConflictError("User is already staff of this branch")
    now = utcnow()
    data = {key: value for key, value in data.items() if value is not None}
    data.setdefault("hire_date", now.date())
    return _save(session, BranchStaff(**data, created_at=now, updated_at=now))


def update_staff(session: Session, staff: BranchStaff, updates: dict) -> BranchStaff:
    _apply_updates(staff, updates)
    return _save(session, staff)


def delete_staff(session: Session, staff: BranchStaff) -> None:
    session.delete(staff)
    session.commit()


# -------------------------
# Category operations
# -------------------------

def list_categories(session: Session, *, branch_id: int | None = None) -> List[ProductCategory]:
    statement = select(ProductCategory)
    if branch_id is not None:
        statement = statement.where(ProductCategory.branch_id == branch_id)
    return list(session.exec(statement.order_by(ProductCategory.name.asc(), ProductCategory.id.asc())))


def get_category(session: Session, category_id: int) -> ProductCategory | None:
    return session.get(ProductCategory, category_id)


def create_category(session: Session, data: dict) -> ProductCategory:
    if data.get("branch_id") is not None and session.get(Branch, data["branch_id"]) is None:
        raise NotFoundError("Branch not found")
    now = utcnow()
    return _save(session, ProductCategory(**data, created_at=now, updated_at=now))


def update_category(session: Session, category: ProductCategory, updates: dict) -> ProductCategory:
    _apply_updates(category, updates)
    return _save(session, category)


def delete_category(session: Session, category: ProductCategory) -> None:
    if _count(session, select(func.count(Product.id)).where(Product.category_id == category.id)):
        raise ConflictError("Cannot delete a category that still has products")
    session.delete(category)
    session.commit()


# -------------------------
# Product operations
# -------------------------

def list_products(
    session: Session,
    *,
    branch_id: int | None = None,
    category_id: int | None = None,
    available_only: bool = False,
) -> List[Product]:
    statement = select(Product)
    if branch_id is not None:
        statement = statement.where(Product.branch_id == branch_id)
    if category_id is not None:
        statement = statement.where(Product.category_id == category_id)
    if available_only:
        statement = statement.where(Product.is_available.is_(True))
    return list(session.exec(statement.order_by(Product.name.asc(), Product.id.asc())))


def get_product(session: Session, product_id: int) -> Product | None:
    return session.get(Product, product_id)


def create_product(session: Session, data: dict) -> Product:
    _check_product_refs(session, data)
    if data.get("sku"):
        _check_sku(session, data["sku"])
    now = utcnow()
    return _save(session, Product(**data, created_at=now, updated_at=now))


def update_product(session: Session, product: Product, updates: dict) -> Product:
    _check_product_refs(session, updates)
    sku = updates.get("sku")
    if sku and sku != product.sku:
        _check_sku(session, sku)
    _apply_updates(product, updates)
    return _save(session, product)


def delete_product(session: Session, product: Product) -> None:
    in_use = _count(session, select(func.count(OrderItem.id)).where(OrderItem.product_id == product.id))
    if in_use:
        raise ConflictError("Cannot delete a product that appears on orders")
    session.delete(product)
    session.commit()


def _check_product_refs(session: Session, data: dict) -> None:
    if data.get("category_id") is not None and session.get(ProductCategory, data["category_id"]) is None:
        raise NotFoundError("Product category not found")
    if data.get("branch_id") is not None and session.get(Branch, data["branch_id"]) is None:
        raise NotFoundError("Branch not found")


def _check_sku(session: Session, sku: str) -> None:
    if session.exec(select(Product).where(Product.sku == sku)).first() is not None:
        raise ConflictError("SKU already exists")


# -------------------------
# Demo data
# -------------------------

def ensure_demo_data(session: Session, now: Optional[datetime] = None) -> None:
    existing_count = session.exec(select(func.count(Company.id))).one()
    if existing_count:
        return
    now = now or utcnow()
    for company_data in DEMO_COMPANIES:
        company = Company(name=company_data["name"], email=company_data.get("email"), created_at=now, updated_at=now)
        session.add(company)
        session.flush()
        for branch_data in company_data["branches"]:
            branch = Branch(
                company_id=company.id,
                name=branch_data["name"],
                address=branch_data.get("address"),
                created_at=now,
                updated_at=now,
            )
            session.add(branch)
            session.flush()
            for number in branch_data["tables"]:
                session.add(BranchTable(branch_id=branch.id, table_number=number, capacity=4, created_at=now, updated_at=now))
            for category_name, products in branch_data["menu"].items():
                category = ProductCategory(branch_id=branch.id, name=category_name, created_at=now, updated_at=now)
                session.add(category)
                session.flush()
                for product in products:
                    session.add(
                        Product(
                            branch_id=branch.id,
                            category_id=category.id,
                            name=product["name"],
                            sku=product.get("sku"),
                            price=product["price"],
                            created_at=now,
                            updated_at=now,
                        )
                    )
    session.commit()
