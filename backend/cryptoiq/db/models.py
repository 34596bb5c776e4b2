# backend/cryptoiq/db/models.py

import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

ROLE_FREE = "free"
ROLE_PREMIUM = "premium"


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity provider's user
    id = Column(String(36), primary_key=True)
    email = Column(String, nullable=True, index=True)
    role = Column(String, default=ROLE_FREE, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    @property
    def is_premium(self) -> bool:
        return self.role == ROLE_PREMIUM

    def __repr__(self):
        return f"<Profile(id='{self.id}', role='{self.role}')>"


class PortfolioHolding(Base):
    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    coin = Column(String, nullable=False)
    amount = Column(Numeric(28, 10), nullable=False)
    buy_price = Column(Numeric(28, 10), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<PortfolioHolding(user_id='{self.user_id}', coin='{self.coin}')>"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    reference = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False)
    amount = Column(Integer)
    currency = Column(String)
    channel = Column(String)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<Payment(reference='{self.reference}', status='{self.status}')>"
