from gtshop.models.user import User
from gtshop.models.setting import Setting
from gtshop.models.order import Order, OrderStatus, OrderStatusEntry
from gtshop.models.knowledge import KnowledgeEntry, ChatMessage, SupportTicket

__all__ = [
    "User",
    "Setting",
    "Order",
    "OrderStatus",
    "OrderStatusEntry",
    "KnowledgeEntry",
    "ChatMessage",
    "SupportTicket",
]
