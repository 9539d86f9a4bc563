from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from database import Base

# Product master data as seen by stock tracking.
# Catalog maintenance (prices, descriptions, images) lives outside this service;
# only the fields needed for alerts and sale validation are mapped here.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    code = Column(String, unique=True, nullable=False, index=True)

    category = Column(String, nullable=True)
    supplier = Column(String, nullable=True)

    # Inactive products are excluded from sale validation and alerts
    is_active = Column(Boolean, nullable=False, default=True)

    stock_record = relationship("StockRecord", back_populates="product", uselist=False)
