# backend/models/users.py
from sqlalchemy import Column, Integer, String, Boolean
from database import Base

# Account of an actor that can be attributed in the stock ledger.
# Credentials are issued by the auth service; only identity and role are used here.
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
