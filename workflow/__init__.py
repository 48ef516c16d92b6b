"""Workflow management module"""

from .actions import OrderManager, OrderPlacementError
from .handlers import MessageHandler
from .thread_safe_handlers import ThreadSafeMessageHandler

__all__ = [
    'MessageHandler', 'ThreadSafeMessageHandler', 'OrderManager', 'OrderPlacementError'
]
