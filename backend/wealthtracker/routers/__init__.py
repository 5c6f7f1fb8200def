"""
API Routers

Thin FastAPI routers over the export, report and backup services.
"""

from wealthtracker.routers import backup_router
from wealthtracker.routers import exports_router
from wealthtracker.routers import reports_router

__all__ = [
    "backup_router",
    "exports_router",
    "reports_router",
]
