# backend/schemas/stock.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional, Literal

from services.adjustments import AdjustmentReason

# Movement types accepted by the ledger
StockMovementType = Literal["IN", "OUT", "ADJUSTMENT"]

# Manual stock movement (IN/OUT); adjustments use the two-step endpoints
class StockMovementCreate(BaseModel):
    product_id: int = Field(ge=1)
    type: Literal["IN", "OUT"]
    quantity: int = Field(gt=0)
    reason: Optional[str] = Field(default=None, max_length=500)

# Ledger entry as returned to audit views
class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    type: StockMovementType
    quantity: int
    signed_quantity: int
    reason: Optional[str] = None
    user_id: Optional[int] = None
    sale_id: Optional[int] = None
    created_at: datetime
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    user_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

# Paginated response for stock movement history
class StockMovementPage(BaseModel):
    items: List[StockMovementResponse]
    total: int
    page: int
    page_size: int

# Schema for a single item within a bulk delivery
class DeliveryItem(BaseModel):
    product_id: int = Field(ge=1)
    quantity: int = Field(gt=0)

# Schema for registering a bulk stock delivery
class DeliveryCreate(BaseModel):
    items: List[DeliveryItem] = Field(min_length=1)
    reason: Optional[str] = Field(default="Goods received", max_length=500)

class DeliveryResponse(BaseModel):
    message: str
    movements: List[StockMovementResponse]

# First step of a stock adjustment
class StockAdjustmentRequest(BaseModel):
    product_id: int = Field(ge=1)
    new_quantity: int = Field(ge=0)
    reason_code: AdjustmentReason
    notes: Optional[str] = Field(default=None, max_length=500)

class StockAdjustmentPreview(BaseModel):
    product_id: int
    current_quantity: int
    new_quantity: int
    delta: int
    reason: str

    model_config = ConfigDict(from_attributes=True)

# Second step: explicit confirmation of a previewed adjustment
class StockAdjustmentConfirm(StockAdjustmentRequest):
    confirm: bool = False
    # The current quantity shown in the preview
    expected_quantity: int = Field(ge=0)
