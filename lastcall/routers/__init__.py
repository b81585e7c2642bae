"""API Routers - FastAPI endpoint handlers"""

from . import webhooks
from . import blasts
from . import accounts
from . import metrics

__all__ = ["webhooks", "blasts", "accounts", "metrics"]
