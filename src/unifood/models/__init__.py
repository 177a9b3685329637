from .user import User, RoleEnum
from .menu_item import MenuItem
from .order import Order, OrderStatusEnum
from .order_item import OrderItem
from .review import Review
from .notification import Notification, NotificationTypeEnum

__all__ = [
    "User",
    "RoleEnum",
    "MenuItem",
    "Order",
    "OrderStatusEnum",
    "OrderItem",
    "Review",
    "Notification",
    "NotificationTypeEnum",
]
