# API Routes Module
from app.api.routes import (
    subscriptions,
    webhooks,
)

__all__ = [
    "subscriptions",
    "webhooks",
]
