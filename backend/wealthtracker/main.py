import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wealthtracker.config import settings
from wealthtracker.database import build_engine, build_session_factory, init_db
from wealthtracker.exceptions import AppError
from wealthtracker.routers import backup_router, exports_router, reports_router
from wealthtracker.services.backup_service import AutomaticBackupService
from wealthtracker.services.backup_storage import BackupRecordStore
from wealthtracker.services.custom_report_service import CustomReportService
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.export_store import ExportScheduler, ExportStore
from wealthtracker.services.host import (
    PERMISSION_GRANTED,
    ApschedulerPeriodicSync,
    DirectoryOutbox,
    LoggingNotifier,
    StaticPermissions,
)
from wealthtracker.services.key_value_store import SqlKeyValueStore
from wealthtracker.services.report_scheduler import ScheduledReportService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="WealthTracker Reports & Backups")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(exports_router.router)
app.include_router(reports_router.router)
app.include_router(backup_router.router)


def build_services(state, session_factory) -> None:
    """Wire the stores and services onto ``app.state``."""
    storage = SqlKeyValueStore(session_factory)
    outbox = DirectoryOutbox(settings.output_dir) if settings.output_dir else None
    notifier = LoggingNotifier()

    state.export_service = ExportService()
    state.export_store = ExportStore(storage)
    state.custom_report_service = CustomReportService(storage)
    state.report_scheduler = ScheduledReportService(
        storage,
        export_service=state.export_service,
        custom_reports=state.custom_report_service,
        outbox=outbox,
        notifier=notifier,
    )
    state.export_scheduler = ExportScheduler(
        state.export_store,
        state.export_service,
        data_provider=state.report_scheduler.load_financial_data,
        outbox=outbox,
    )
    state.periodic_sync = ApschedulerPeriodicSync()
    state.backup_service = AutomaticBackupService(
        storage,
        backup_store=BackupRecordStore(session_factory),
        export_service=state.export_service,
        notifier=notifier,
        permissions=StaticPermissions({"periodic-background-sync": PERMISSION_GRANTED}),
        periodic_sync=state.periodic_sync,
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Initializing database...")
    engine = build_engine(settings.database_url)
    init_db(engine)
    build_services(app.state, build_session_factory(engine))

    await app.state.report_scheduler.initialize()
    await app.state.export_scheduler.start()
    await app.state.backup_service.initialize()
    logger.info("Startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down background tasks...")
    await app.state.backup_service.destroy()
    app.state.periodic_sync.shutdown()
    await app.state.export_scheduler.stop()
    await app.state.report_scheduler.destroy()
    logger.info("Shutdown complete")
