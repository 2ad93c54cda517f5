"""API routes."""

from .ai import router as ai_router
from .auth import router as auth_router
from .blog import router as blog_router
from .cars import router as cars_router
from .categories import router as categories_router
from .chat import router as chat_router
from .cron import router as cron_router
from .hotels import router as hotels_router
from .jobs import router as jobs_router
from .loyalty import router as loyalty_router
from .orders import router as orders_router
from .payments import router as payments_router
from .payouts import router as payouts_router
from .products import router as products_router
from .proposals import router as proposals_router
from .reviews import router as reviews_router
from .settings import router as settings_router
from .tours import router as tours_router
from .transfers import router as transfers_router

__all__ = [
    "auth_router",
    "categories_router",
    "blog_router",
    "jobs_router",
    "proposals_router",
    "products_router",
    "orders_router",
    "payouts_router",
    "payments_router",
    "cars_router",
    "hotels_router",
    "tours_router",
    "transfers_router",
    "reviews_router",
    "loyalty_router",
    "cron_router",
    "chat_router",
    "ai_router",
    "settings_router",
]
