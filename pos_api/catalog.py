from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session

from . import crud, schemas
from .database import get_session
from .deps import AccessGuard, CompanyScope
from .errors import NotFoundError

router = APIRouter()


def _envelope(data, message: str | None = None, count: int | None = None) -> dict:
    return {"success": True, "data": data, "message": message, "count": count}


# -------------------------
# Companies
# -------------------------

@router.get("/companies", response_model=schemas.Envelope[List[schemas.CompanyRead]])
def list_companies(
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    companies = crud.list_companies(session, company_id=company_id)
    return _envelope(companies, count=len(companies))


@router.get("/companies/{company_id}", response_model=schemas.Envelope[schemas.CompanyRead])
def get_company(
    company_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return _envelope(_company_or_404(session, company_id))


@router.post("/companies", response_model=schemas.Envelope[schemas.CompanyRead], status_code=status.HTTP_201_CREATED)
def create_company(
    payload: schemas.CompanyCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    company = crud.create_company(session, payload.model_dump(exclude_unset=True))
    return _envelope(company, "Company created successfully")


@router.put("/companies/{company_id}", response_model=schemas.Envelope[schemas.CompanyRead])
def update_company(
    company_id: int,
    payload: schemas.CompanyUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    company = _company_or_404(session, company_id)
    company = crud.update_company(session, company, payload.model_dump(exclude_unset=True))
    return _envelope(company, "Company updated successfully")


@router.delete("/companies/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company(
    company_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    crud.delete_company(session, _company_or_404(session, company_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _company_or_404(session: Session, company_id: int):
    company = crud.get_company(session, company_id)
    if not company:
        raise NotFoundError("Company not found")
    return company


# -------------------------
# Branches
# -------------------------

@router.get("/branches", response_model=schemas.Envelope[List[schemas.BranchRead]])
def list_branches(
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    branches = crud.list_branches(session, company_id=company_id)
    return _envelope(branches, count=len(branches))


@router.get("/branches/{branch_id}", response_model=schemas.Envelope[schemas.BranchRead])
def get_branch(
    branch_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    return _envelope(branch_or_404(session, branch_id, company_id))


@router.post("/branches", response_model=schemas.Envelope[schemas.BranchRead], status_code=status.HTTP_201_CREATED)
def create_branch(
    payload: schemas.BranchCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    branch = crud.create_branch(session, payload.model_dump(exclude_unset=True))
    return _envelope(branch, "Branch created successfully")


@router.put("/branches/{branch_id}", response_model=schemas.Envelope[schemas.BranchRead])
def update_branch(
    branch_id: int,
    payload: schemas.BranchUpdate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    branch = branch_or_404(session, branch_id, company_id)
    branch = crud.update_branch(session, branch, payload.model_dump(exclude_unset=True))
    return _envelope(branch, "Branch updated successfully")


@router.delete("/branches/{branch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_branch(
    branch_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    crud.delete_branch(session, branch_or_404(session, branch_id, company_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/branches/{branch_id}/tables", response_model=schemas.Envelope[List[schemas.TableRead]])
def list_branch_tables(
    branch_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    branch = branch_or_404(session, branch_id, company_id)
    tables = crud.list_tables(session, branch_id=branch.id)
    return _envelope(tables, count=len(tables))


def branch_or_404(session: Session, branch_id: int, company_id: int | None = None):
    branch = crud.get_branch(session, branch_id, company_id=company_id)
    if not branch:
        raise NotFoundError("Branch not found")
    return branch


# -------------------------
# Staff
# -------------------------

@router.get("/staff", response_model=schemas.Envelope[List[schemas.StaffRead]])
def list_staff(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
):
    staff = crud.list_staff(session, company_id=company_id, branch_id=branch_id, role=role, status=status)
    return _envelope([_staff_read(member) for member in staff], count=len(staff))


@router.get("/staff/{staff_id}", response_model=schemas.Envelope[schemas.StaffRead])
def get_staff(
    staff_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    return _envelope(_staff_read(_staff_or_404(session, staff_id, company_id)))


@router.post("/staff", response_model=schemas.Envelope[schemas.StaffRead], status_code=status.HTTP_201_CREATED)
def create_staff(
    payload: schemas.StaffCreate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    branch_or_404(session, payload.branch_id, company_id)
    staff = crud.create_staff(session, payload.model_dump(exclude_unset=True))
    return _envelope(_staff_read(staff), "Staff member created successfully")


@router.put("/staff/{staff_id}", response_model=schemas.Envelope[schemas.StaffRead])
def update_staff(
    staff_id: int,
    payload: schemas.StaffUpdate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    staff = _staff_or_404(session, staff_id, company_id)
    staff = crud.update_staff(session, staff, payload.model_dump(exclude_unset=True))
    return _envelope(_staff_read(staff), "Staff member updated successfully")


@router.delete("/staff/{staff_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_staff(
    staff_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    crud.delete_staff(session, _staff_or_404(session, staff_id, company_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/branches/{branch_id}/staff", response_model=schemas.Envelope[List[schemas.StaffRead]])
def list_branch_staff(
    branch_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    role: Optional[str] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
):
    branch = branch_or_404(session, branch_id, company_id)
    staff = crud.list_staff(session, branch_id=branch.id, role=role, status=status)
    return _envelope([_staff_read(member) for member in staff], count=len(staff))


def _staff_or_404(session: Session, staff_id: int, company_id: int | None = None):
    staff = crud.get_staff(session, staff_id, company_id=company_id)
    if not staff:
        raise NotFoundError("Staff member not found")
    return staff


def _staff_read(staff) -> schemas.StaffRead:
    return schemas.StaffRead.model_validate(staff)


# -------------------------
# Tables
# -------------------------

@router.get("/tables", response_model=schemas.Envelope[List[schemas.TableRead]])
def list_tables(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
):
    tables = crud.list_tables(session, company_id=company_id, branch_id=branch_id, status=status)
    return _envelope(tables, count=len(tables))


@router.get("/tables/{table_id}", response_model=schemas.Envelope[schemas.TableRead])
def get_table(
    table_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return _envelope(_table_or_404(session, table_id))


@router.post("/tables", response_model=schemas.Envelope[schemas.TableRead], status_code=status.HTTP_201_CREATED)
def create_table(
    payload: schemas.TableCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    table = crud.create_table(session, payload.model_dump())
    return _envelope(table, "Table created successfully")


@router.put("/tables/{table_id}", response_model=schemas.Envelope[schemas.TableRead])
def update_table(
    table_id: int,
    payload: schemas.TableUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    table = _table_or_404(session, table_id)
    table = crud.update_table(session, table, payload.model_dump(exclude_unset=True))
    return _envelope(table, "Table updated successfully")


@router.put("/tables/{table_id}/status", response_model=schemas.Envelope[schemas.TableRead])
def update_table_status(
    table_id: int,
    payload: schemas.TableStatusUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    new_status = crud.validate_table_status(payload.status)
    table = crud.update_table(session, _table_or_404(session, table_id), {"status": new_status})
    return _envelope(table, "Table status updated successfully")


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(
    table_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    crud.delete_table(session, _table_or_404(session, table_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _table_or_404(session: Session, table_id: int):
    table = crud.get_table(session, table_id)
    if not table:
        raise NotFoundError("Table not found")
    return table


# -------------------------
# Categories
# -------------------------

@router.get("/categories", response_model=schemas.Envelope[List[schemas.CategoryRead]])
def list_categories(
    _: AccessGuard,
    branch_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    categories = crud.list_categories(session, branch_id=branch_id)
    return _envelope(categories, count=len(categories))


@router.get("/categories/{category_id}", response_model=schemas.Envelope[schemas.CategoryRead])
def get_category(
    category_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return _envelope(_category_or_404(session, category_id))


@router.post("/categories", response_model=schemas.Envelope[schemas.CategoryRead], status_code=status.HTTP_201_CREATED)
def create_category(
    payload: schemas.CategoryCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    category = crud.create_category(session, payload.model_dump(exclude_unset=True))
    return _envelope(category, "Category created successfully")


@router.put("/categories/{category_id}", response_model=schemas.Envelope[schemas.CategoryRead])
def update_category(
    category_id: int,
    payload: schemas.CategoryUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    category = _category_or_404(session, category_id)
    category = crud.update_category(session, category, payload.model_dump(exclude_unset=True))
    return _envelope(category, "Category updated successfully")


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    crud.delete_category(session, _category_or_404(session, category_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _category_or_404(session: Session, category_id: int):
    category = crud.get_category(session, category_id)
    if not category:
        raise NotFoundError("Product category not found")
    return category


# -------------------------
# Products
# -------------------------

@router.get("/products", response_model=schemas.Envelope[List[schemas.ProductRead]])
def list_products(
    _: AccessGuard,
    branch_id: Optional[int] = None,
    category_id: Optional[int] = None,
    available_only: bool = False,
    session: Session = Depends(get_session),
):
    products = crud.list_products(
        session,
        branch_id=branch_id,
        category_id=category_id,
        available_only=available_only,
    )
    return _envelope([_product_read(product) for product in products], count=len(products))


@router.get("/products/{product_id}", response_model=schemas.Envelope[schemas.ProductRead])
def get_product(
    product_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return _envelope(_product_read(_product_or_404(session, product_id)))


@router.post("/products", response_model=schemas.Envelope[schemas.ProductRead], status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    product = crud.create_product(session, payload.model_dump(exclude_unset=True))
    return _envelope(_product_read(product), "Product created successfully")


@router.put("/products/{product_id}", response_model=schemas.Envelope[schemas.ProductRead])
def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    product = _product_or_404(session, product_id)
    product = crud.update_product(session, product, payload.model_dump(exclude_unset=True))
    return _envelope(_product_read(product), "Product updated successfully")


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    crud.delete_product(session, _product_or_404(session, product_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _product_or_404(session: Session, product_id: int):
    product = crud.get_product(session, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _product_read(product) -> schemas.ProductRead:
    return schemas.ProductRead.model_validate(product)
