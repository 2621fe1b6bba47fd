# vaultrelay/models/user.py

from sqlalchemy import Column, String, DateTime
from datetime import datetime
from vaultrelay.models.base import Base

class User(Base):
    __tablename__ = "users"

    id = Column(String(100), primary_key=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
