# backend/routes/sales.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from database import get_db
from models.users import User
from services import sales, validator
from utils.tokenJWT import role_required, VIEW_ROLES, SALES_ROLES
from utils.audit import write_log, client_ip
import schemas.sale as sale_schemas

router = APIRouter(prefix="/sales", tags=["Sales"])


# Checkout pre-check, read only
@router.post("/validate-stock", response_model=sale_schemas.ValidateStockResponse)
def validate_stock(
    payload: sale_schemas.ValidateStockRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    result = validator.validate_items(db, payload.items)
    return sale_schemas.ValidateStockResponse(
        is_valid=result.is_valid,
        total_items=result.total_items,
        valid_items=result.valid_items,
        invalid_items=result.invalid_items,
        validation_results=[sale_schemas.ItemValidationResponse.model_validate(r) for r in result.results],
        summary=result.summary,
    )


@router.post("/", response_model=sale_schemas.SaleResponse, status_code=201)
def create_sale(
    payload: sale_schemas.SaleCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*SALES_ROLES)),
):
    sale = sales.create_sale(
        db, items=payload.items, user_id=current_user.id, customer_name=payload.customer_name
    )
    write_log(db, user_id=current_user.id, action="SALE_CREATE", resource="sales", status="SUCCESS",
              ip=client_ip(request), meta={"sale_id": sale.id, "items": len(sale.items)})
    return sale


@router.get("/{sale_id}", response_model=sale_schemas.SaleResponse)
def get_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    return sales.get_sale(db, sale_id)


@router.post("/{sale_id}/confirm", response_model=sale_schemas.SaleResponse)
def confirm_sale(
    sale_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*SALES_ROLES)),
):
    sale = sales.confirm_sale(db, sale_id, user_id=current_user.id)
    write_log(db, user_id=current_user.id, action="SALE_CONFIRM", resource="sales", status="SUCCESS",
              ip=client_ip(request), meta={"sale_id": sale.id})
    return sale


@router.post("/{sale_id}/cancel", response_model=sale_schemas.SaleResponse)
def cancel_sale(
    sale_id: int,
    request: Request,
    payload: Optional[sale_schemas.SaleCancel] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*SALES_ROLES)),
):
    reason = payload.reason if payload else None
    sale = sales.cancel_sale(db, sale_id, user_id=current_user.id, reason=reason)
    write_log(db, user_id=current_user.id, action="SALE_CANCEL", resource="sales", status="SUCCESS",
              ip=client_ip(request), meta={"sale_id": sale.id, "reason": reason})
    return sale
