from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base, utcnow

# Current quantity of record for one product.
# Denormalized cache of the movement ledger: quantity always equals the signed
# sum of the product's stock_movements. Mutated only through the ledger.
class StockRecord(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("min_stock >= 0", name="ck_inventory_min_stock_non_negative"),
        CheckConstraint("max_stock IS NULL OR max_stock > min_stock", name="ck_inventory_max_above_min"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), unique=True, nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=10)
    max_stock = Column(Integer, nullable=True)
    location = Column(String(100), nullable=True)

    # Bumped on every write, used for optimistic checks by clients
    version = Column(Integer, nullable=False, default=1)

    last_update = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="stock_record")
