# backend/models/stock.py
import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from database import Base, utcnow

# Movement classification
class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"

# Immutable ledger entry. Rows are only ever inserted.
class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_movements_product_id_id", "product_id", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    # Null for system generated entries
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=True, index=True)

    type = Column(String(20), nullable=False, index=True)
    # IN/OUT: positive magnitude, ADJUSTMENT: signed delta
    qty = Column(Integer, nullable=False)

    reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = relationship("Product")
    user = relationship("User")

    @property
    def signed_quantity(self) -> int:
        if self.type == MovementType.OUT.value:
            return -self.qty
        return self.qty
