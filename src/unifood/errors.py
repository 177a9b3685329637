"""
Типизированные ошибки ядра.

Сервисы выбрасывают их, обработчик в main.py превращает в JSON-ответ
вида {"error": <code>, "detail": <message>, ...}.
"""


class UniFoodError(Exception):
    code = "UniFoodError"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)

    def payload(self) -> dict:
        return {"error": self.code, "detail": str(self)}


class InvalidQuantity(UniFoodError):
    code = "InvalidQuantity"

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class ItemUnavailable(UniFoodError):
    code = "ItemUnavailable"
    status_code = 409

    def __init__(self, menu_item_id: int):
        self.menu_item_id = menu_item_id
        super().__init__(f"Menu item {menu_item_id} is not available")


class EmptyCart(UniFoodError):
    code = "EmptyCart"

    def __init__(self):
        super().__init__("Cart is empty")


class SlotUnavailable(UniFoodError):
    code = "SlotUnavailable"
    status_code = 409

    def __init__(self, label: str | None, reason: str):
        self.label = label
        self.reason = reason
        super().__init__(f"Slot {label!r} is unavailable: {reason}")

    def payload(self) -> dict:
        return {**super().payload(), "slot": self.label, "reason": self.reason}


class PaymentFailed(UniFoodError):
    code = "PaymentFailed"
    status_code = 402

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Payment failed: {reason}")

    def payload(self) -> dict:
        return {**super().payload(), "reason": self.reason}


class IllegalTransition(UniFoodError):
    code = "IllegalTransition"
    status_code = 409

    def __init__(self, from_status, to_status):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(f"Cannot move order from {self.from_status!r} to {self.to_status!r}")

    def payload(self) -> dict:
        return {**super().payload(), "from": self.from_status, "to": self.to_status}


class PersistenceFailure(UniFoodError):
    """Хранилище недоступно или конфликт. payment_ref сохраняется для повтора."""
    code = "PersistenceFailure"
    status_code = 503

    def __init__(self, payment_ref: str | None = None, message: str = ""):
        self.payment_ref = payment_ref
        super().__init__(message or "Order could not be saved, retry with the same payment reference")

    def payload(self) -> dict:
        return {**super().payload(), "payment_ref": self.payment_ref}


class TokenCollision(PersistenceFailure):
    code = "TokenCollision"
    status_code = 500

    def __init__(self, token: str, payment_ref: str | None = None):
        self.token = token
        super().__init__(payment_ref, f"Pickup token {token} already issued today")


class NotFound(UniFoodError):
    code = "NotFound"
    status_code = 404
    entity = "Object"

    def __init__(self, key):
        self.key = key
        super().__init__(f"{self.entity} {key} not found")


class OrderNotFound(NotFound):
    code = "OrderNotFound"
    entity = "Order"


class MenuItemNotFound(NotFound):
    code = "MenuItemNotFound"
    entity = "Menu item"


class UserNotFound(NotFound):
    code = "UserNotFound"
    entity = "User"


class NotificationNotFound(NotFound):
    code = "NotificationNotFound"
    entity = "Notification"


class OverrideNotFound(NotFound):
    code = "OverrideNotFound"
    entity = "Pending confirmation"


class PendingCheckoutNotFound(NotFound):
    code = "PendingCheckoutNotFound"
    entity = "Pending checkout for payment"


class InvalidRating(UniFoodError):
    code = "InvalidRating"

    def __init__(self, rating):
        self.rating = rating
        super().__init__(f"Rating must be an integer from 1 to 5, got {rating!r}")
