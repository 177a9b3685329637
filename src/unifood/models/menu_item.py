from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, Float, JSON, Text, func
from sqlalchemy.orm import relationship
from ..db.base import Base


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=True)  # Main Course, Beverages и т.д.
    cuisine = Column(String(64), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)  # цена
    is_veg = Column(Boolean, default=False, nullable=False)
    spice_level = Column(Integer, default=0, nullable=False)  # 0..5
    allergens = Column(JSON, nullable=False, default=list)
    ingredients = Column(JSON, nullable=False, default=list)
    is_available = Column(Boolean, default=True, nullable=False)
    average_rating = Column(Float, default=0.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)
    preparation_time = Column(Integer, default=10, nullable=False)  # минуты
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # связь с OrderItem
    order_items = relationship("OrderItem", back_populates="menu_item")
    reviews = relationship("Review", back_populates="menu_item", cascade="all, delete-orphan")
