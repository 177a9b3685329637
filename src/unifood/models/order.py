import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text, Date, DateTime, ForeignKey, Enum as SAEnum, func,
)
from sqlalchemy.orm import relationship
from ..db.base import Base


class OrderStatusEnum(str, enum.Enum):
    ordered = "ordered"
    preparing = "preparing"
    ready = "ready"
    served = "served"
    cancelled = "cancelled"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(SAEnum(OrderStatusEnum, name="order_status"), nullable=False, default=OrderStatusEnum.ordered)
    business_day = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # "13:15"
    token = Column(String(16), nullable=False, unique=True)  # YYMMDD-NNN
    payment_ref = Column(String(64), nullable=False, unique=True)  # ключ идемпотентности
    payment_method = Column(String(32), nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)  # subtotal + налог
    special_instructions = Column(Text, nullable=True)
    estimated_preparation_time = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    # связи
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
