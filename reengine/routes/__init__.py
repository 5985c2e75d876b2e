# reengine/routes/__init__.py
"""
API route handlers organized by domain.
"""

from reengine.routes.approvals import router as approvals_router
from reengine.routes.dnc import router as dnc_router
from reengine.routes.health import router as health_router
from reengine.routes.leads import router as leads_router
from reengine.routes.router import router as router_router

__all__ = [
    "approvals_router",
    "dnc_router",
    "health_router",
    "leads_router",
    "router_router",
]
