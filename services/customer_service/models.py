from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from shared.config.database import Base


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(15), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(60), nullable=False, default="India")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
