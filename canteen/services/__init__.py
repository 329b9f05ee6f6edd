"""
                        Services Module

Business logic behind the routers. External integrations follow the hybrid
pattern: a mock implementation in development and a real one otherwise.

Services:
    - order_queue: bounded-concurrency FIFO for order placement
    - cache: in-process TTL cache with prefix invalidation
    - orders / accounts / canteens: domain rules shared by routers
    - payment: per-canteen Stripe gateways
    - storage: Cloudinary hosting for payment QR images
    - excel_manager: locked Excel report writer
"""

from canteen.services.cache import CacheManager
from canteen.services.excel_manager import ExcelManager
from canteen.services.order_queue import OrderQueue

__all__ = ["CacheManager", "ExcelManager", "OrderQueue"]
