# backend/schemas/sale.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional


class SaleLine(BaseModel):
    product_id: int = Field(ge=1)
    quantity: int = Field(gt=0)


# Checkout pre-check: does the current stock cover these lines?
class ValidateStockRequest(BaseModel):
    items: List[SaleLine] = Field(min_length=1)


class ItemValidationResponse(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    is_valid: bool
    requested_quantity: int
    available_quantity: int
    error: Optional[str] = None
    shortfall: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ValidationSummary(BaseModel):
    can_proceed: bool
    message: str


class ValidateStockResponse(BaseModel):
    is_valid: bool
    total_items: int
    valid_items: int
    invalid_items: int
    validation_results: List[ItemValidationResponse]
    summary: ValidationSummary


class SaleCreate(BaseModel):
    customer_name: Optional[str] = Field(default=None, max_length=200)
    items: List[SaleLine] = Field(min_length=1)


class SaleCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SaleItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class SaleResponse(BaseModel):
    id: int
    status: str
    customer_name: Optional[str] = None
    user_id: Optional[int] = None
    sale_date: Optional[datetime] = None
    created_at: datetime
    items: List[SaleItemOut]

    model_config = ConfigDict(from_attributes=True)
