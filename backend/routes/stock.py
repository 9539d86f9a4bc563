# backend/routes/stock.py
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional, Literal

from database import get_db
from models.stock import StockMovement, MovementType
from models.users import User
from services import adjustments, errors, ledger
from utils.tokenJWT import role_required, VIEW_ROLES, STOCK_ROLES
from utils.audit import write_log, client_ip
from utils.cache import alert_cache
import schemas.stock as stock_schemas

router = APIRouter(tags=["Stock"])


def movement_to_out(m: StockMovement) -> stock_schemas.StockMovementResponse:
    return stock_schemas.StockMovementResponse(
        id=m.id,
        product_id=m.product_id,
        type=m.type,
        quantity=m.qty,
        signed_quantity=m.signed_quantity,
        reason=m.reason,
        user_id=m.user_id,
        sale_id=m.sale_id,
        created_at=m.created_at,
        product_name=m.product.name if m.product else None,
        product_code=m.product.code if m.product else None,
        user_email=m.user.email if m.user else None,
    )


def _page(items, total, page, page_size) -> stock_schemas.StockMovementPage:
    return stock_schemas.StockMovementPage(
        items=[movement_to_out(m) for m in items], total=total, page=page, page_size=page_size
    )


@router.get("/", response_model=stock_schemas.StockMovementPage)
def list_movements(
    product_id: Optional[int] = Query(None, ge=1),
    type: Optional[stock_schemas.StockMovementType] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    sale_id: Optional[int] = Query(None, ge=1),
    reason: Optional[str] = Query(None, max_length=100),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    items, total = ledger.list_movements(
        db, product_id=product_id, type=type, user_id=user_id, sale_id=sale_id, reason=reason,
        date_from=date_from, date_to=date_to, order=order, page=page, page_size=page_size,
    )
    return _page(items, total, page, page_size)


@router.get("/product/{product_id}", response_model=stock_schemas.StockMovementPage)
def list_product_movements(
    product_id: int,
    type: Optional[stock_schemas.StockMovementType] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    sale_id: Optional[int] = Query(None, ge=1),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    items, total = ledger.list_by_product(
        db, product_id, type=type, user_id=user_id, sale_id=sale_id,
        date_from=date_from, date_to=date_to, order=order, page=page, page_size=page_size,
    )
    return _page(items, total, page, page_size)


@router.post("/movements", response_model=stock_schemas.StockMovementResponse, status_code=201)
def create_movement(
    payload: stock_schemas.StockMovementCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    movement = ledger.append(
        db,
        product_id=payload.product_id,
        type=payload.type,
        quantity=payload.quantity,
        reason=payload.reason,
        user_id=current_user.id,
    )
    write_log(db, user_id=current_user.id, action=f"STOCK_{payload.type}", resource="stock", status="SUCCESS",
              ip=client_ip(request), meta={"movement_id": movement.id, "product_id": payload.product_id,
                                            "quantity": payload.quantity})
    return movement_to_out(movement)


@router.post("/delivery", response_model=stock_schemas.DeliveryResponse, status_code=201)
def receive_delivery(
    payload: stock_schemas.DeliveryCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    # All lines of a delivery are booked in one transaction
    movements = []
    try:
        for item in payload.items:
            movements.append(ledger.append(
                db, product_id=item.product_id, type=MovementType.IN, quantity=item.quantity,
                reason=payload.reason, user_id=current_user.id, commit=False,
            ))
        db.commit()
    except errors.InventoryError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise errors.StorageError(operation="delivery") from exc
    alert_cache.clear()

    write_log(db, user_id=current_user.id, action="STOCK_DELIVERY", resource="stock", status="SUCCESS",
              ip=client_ip(request), meta={"count": len(movements), "movement_ids": [m.id for m in movements]})
    return stock_schemas.DeliveryResponse(
        message=f"Received {len(movements)} item(s)",
        movements=[movement_to_out(m) for m in movements],
    )


@router.post("/adjust/preview", response_model=stock_schemas.StockAdjustmentPreview)
def preview_adjustment(
    payload: stock_schemas.StockAdjustmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    planned = adjustments.preview(
        db, payload.product_id, payload.new_quantity, payload.reason_code, payload.notes
    )
    return stock_schemas.StockAdjustmentPreview.model_validate(planned)


@router.post("/adjust/confirm", response_model=stock_schemas.StockMovementResponse, status_code=201)
def confirm_adjustment(
    payload: stock_schemas.StockAdjustmentConfirm,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    if not payload.confirm:
        raise HTTPException(status_code=400, detail="Adjustment must be explicitly confirmed")

    movement = adjustments.adjust(
        db, payload.product_id, payload.new_quantity, payload.reason_code, payload.notes,
        user_id=current_user.id, expected_quantity=payload.expected_quantity,
    )
    write_log(db, user_id=current_user.id, action="STOCK_ADJUSTMENT", resource="stock", status="SUCCESS",
              ip=client_ip(request), meta={"movement_id": movement.id, "product_id": payload.product_id,
                                            "delta": movement.qty, "reason": movement.reason})
    return movement_to_out(movement)
