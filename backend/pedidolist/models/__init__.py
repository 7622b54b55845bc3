"""Database models."""

from pedidolist.models.order import Order
from pedidolist.models.product import Product
from pedidolist.models.sync_queue import SyncQueueItem

__all__ = ["Order", "Product", "SyncQueueItem"]
