from app.models.user import User
from app.models.order import Order, OrderItem

__all__ = ["User", "Order", "OrderItem"]
