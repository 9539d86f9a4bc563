# backend/schemas/inventory.py
from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import datetime
from typing import List, Optional, Literal

from schemas.stock import StockMovementResponse


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProductInfo(ORMBase):
    id: int
    name: str
    code: str
    category: Optional[str] = None
    supplier: Optional[str] = None
    is_active: bool = True


# Start tracking stock for a product
class StockRecordCreate(BaseModel):
    product_id: int = Field(ge=1)
    initial_quantity: int = Field(default=0, ge=0)
    min_stock: int = Field(default=10, ge=0)
    max_stock: Optional[int] = Field(default=None, ge=1)
    location: Optional[str] = Field(default=None, min_length=2, max_length=100)

    @model_validator(mode="after")
    def _max_above_min(self):
        if self.max_stock is not None and self.max_stock <= self.min_stock:
            raise ValueError("max_stock must be greater than min_stock")
        return self


class ThresholdsUpdate(BaseModel):
    min_stock: int = Field(ge=0)
    max_stock: Optional[int] = Field(default=None, ge=1)
    # Version the client read; mismatch means someone else changed the record
    expected_version: Optional[int] = Field(default=None, ge=1)


class LocationUpdate(BaseModel):
    location: Optional[str] = Field(default=None, max_length=100)


class StockRecordResponse(ORMBase):
    id: int
    product_id: int
    quantity: int
    min_stock: int
    max_stock: Optional[int] = None
    location: Optional[str] = None
    version: int
    last_update: datetime
    created_at: datetime
    status: Literal["OK", "LOW", "OUT", "OVERSTOCK"]
    is_low_stock: bool
    is_out_of_stock: bool
    product: ProductInfo


class StockRecordPage(BaseModel):
    items: List[StockRecordResponse]
    total: int
    page: int
    page_size: int


class StockCheckResponse(BaseModel):
    product_id: int
    available: bool
    quantity: int
    is_low_stock: bool


class InventoryStats(BaseModel):
    total_products: int
    total_units: int
    low_stock_count: int
    out_of_stock_count: int
    average_stock: float
    recent_movements: List[StockMovementResponse]


class StockAlertResponse(ORMBase):
    product_id: int
    product_name: str
    product_code: str
    category_name: Optional[str] = None
    current_stock: int
    min_stock: int
    max_stock: Optional[int] = None
    sales_last_30_days: int
    sales_days: int
    average_daily_sales: float
    # null means "not applicable": no sales in the window
    days_until_out_of_stock: Optional[float] = None
    urgency_level: Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]
    is_out_of_stock: bool
    suggested_reorder_quantity: Optional[int] = None


class StockAlertList(BaseModel):
    type: Literal["low-stock", "out-of-stock"]
    total: int
    items: List[StockAlertResponse]


class AlertSummary(BaseModel):
    critical: int
    high: int
    medium: int
    low: int
    out_of_stock: int
    total: int


class DriftItem(BaseModel):
    product_id: int
    cached_quantity: int
    ledger_quantity: int


class ReconcileResponse(BaseModel):
    consistent: bool
    drift: List[DriftItem]
