# backend/routes/inventory.py
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional, Literal

from database import get_db
from models.inventory import StockRecord
from models.users import User
from services import alerts, ledger, stock_record
from utils.tokenJWT import role_required, VIEW_ROLES, STOCK_ROLES
from utils.audit import write_log, client_ip
from routes.stock import movement_to_out
import schemas.inventory as inventory_schemas

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def _record_to_out(record: StockRecord) -> inventory_schemas.StockRecordResponse:
    return inventory_schemas.StockRecordResponse(
        id=record.id,
        product_id=record.product_id,
        quantity=record.quantity,
        min_stock=record.min_stock,
        max_stock=record.max_stock,
        location=record.location,
        version=record.version,
        last_update=record.last_update,
        created_at=record.created_at,
        status=stock_record.stock_status(record),
        is_low_stock=record.quantity <= record.min_stock,
        is_out_of_stock=record.quantity == 0,
        product=inventory_schemas.ProductInfo.model_validate(record.product),
    )


@router.get("/", response_model=inventory_schemas.StockRecordPage)
def list_inventory(
    q: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = Query(None, max_length=100),
    location: Optional[str] = Query(None, max_length=100),
    low_stock: Optional[bool] = Query(None),
    out_of_stock: Optional[bool] = Query(None),
    sort_by: Literal["product_name", "quantity", "min_stock", "location", "last_update"] = "product_name",
    order: Literal["asc", "desc"] = "asc",
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    items, total = stock_record.list_stock_records(
        db, q=q, category=category, location=location, low_stock=low_stock,
        out_of_stock=out_of_stock, sort_by=sort_by, order=order, page=page, page_size=page_size,
    )
    return {
        "items": [_record_to_out(r) for r in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.post("/", response_model=inventory_schemas.StockRecordResponse, status_code=201)
def create_inventory(
    payload: inventory_schemas.StockRecordCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    record = ledger.open_stock_record(
        db,
        product_id=payload.product_id,
        initial_quantity=payload.initial_quantity,
        min_stock=payload.min_stock,
        max_stock=payload.max_stock,
        location=payload.location,
        user_id=current_user.id,
    )
    write_log(db, user_id=current_user.id, action="INVENTORY_CREATE", resource="inventory", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": payload.product_id,
                                            "initial_quantity": payload.initial_quantity})
    return _record_to_out(record)


@router.get("/stats", response_model=inventory_schemas.InventoryStats)
def inventory_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    stats = stock_record.inventory_statistics(db)
    stats["recent_movements"] = [movement_to_out(m) for m in stats["recent_movements"]]
    return stats


@router.get("/alerts", response_model=inventory_schemas.StockAlertList)
def list_alerts(
    type: Literal["low-stock", "out-of-stock"] = Query(alerts.LOW_STOCK),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    items = alerts.compute_alerts(db, type, use_cache=True)
    return {
        "type": type,
        "total": len(items),
        "items": [inventory_schemas.StockAlertResponse.model_validate(a) for a in items],
    }


@router.get("/alerts/summary", response_model=inventory_schemas.AlertSummary)
def alerts_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    return alerts.alert_summary(db, use_cache=True)


# Compare every cached quantity with the replayed ledger
@router.get("/reconcile", response_model=inventory_schemas.ReconcileResponse)
def reconcile(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    drift = ledger.find_drift(db)
    return {"consistent": not drift, "drift": drift}


@router.get("/check-stock/{product_id}", response_model=inventory_schemas.StockCheckResponse)
def check_stock(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    return stock_record.check_stock(db, product_id)


@router.get("/{product_id}", response_model=inventory_schemas.StockRecordResponse)
def get_inventory(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*VIEW_ROLES)),
):
    return _record_to_out(stock_record.get_stock_record(db, product_id))


@router.patch("/{product_id}/thresholds", response_model=inventory_schemas.StockRecordResponse)
def update_thresholds(
    product_id: int,
    payload: inventory_schemas.ThresholdsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    record = stock_record.set_thresholds(
        db, product_id, payload.min_stock, payload.max_stock, expected_version=payload.expected_version
    )
    write_log(db, user_id=current_user.id, action="INVENTORY_THRESHOLDS", resource="inventory", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id, "min_stock": payload.min_stock,
                                            "max_stock": payload.max_stock})
    return _record_to_out(record)


@router.patch("/{product_id}/location", response_model=inventory_schemas.StockRecordResponse)
def update_location(
    product_id: int,
    payload: inventory_schemas.LocationUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STOCK_ROLES)),
):
    record = stock_record.set_location(db, product_id, payload.location)
    write_log(db, user_id=current_user.id, action="INVENTORY_LOCATION", resource="inventory", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id, "location": record.location})
    return _record_to_out(record)
