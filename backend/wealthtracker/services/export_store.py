"""
Export Template & Schedule Store

Named export configurations and simple recurring export deliveries,
persisted in the key-value store under ``export-templates`` and
``scheduled-reports``. Also provides ExportScheduler, the background task
that delivers due scheduled exports.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.config import settings
from wealthtracker.constants import EXPORT_TEMPLATES_KEY, SCHEDULED_REPORTS_KEY
from wealthtracker.exceptions import ValidationError
from wealthtracker.schemas.export import (
    ExportFormat,
    ExportOptions,
    ExportTemplate,
    Frequency,
    GroupBy,
    ScheduledReport,
)
from wealthtracker.schemas.finance import FinancialData
from wealthtracker.services.export_service import ExportService
from wealthtracker.services.host import ReportOutbox
from wealthtracker.services.key_value_store import KeyValueStore, load_json, save_json
from wealthtracker.timeutils import Clock, ensure_utc, epoch_id, utcnow

logger = logging.getLogger(__name__)

SIMPLE_FREQUENCIES = (Frequency.DAILY, Frequency.WEEKLY, Frequency.MONTHLY, Frequency.QUARTERLY)

_PERIODS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
}


def next_export_run(frequency: Frequency, now: datetime, hour: int = 9) -> datetime:
    """
    One period after ``now``, pinned to ``hour``:00:00.

    Month arithmetic clamps to the end of shorter months (Jan 31 + 1 month
    is Feb 28/29).
    """
    frequency = Frequency(frequency)
    if frequency not in _PERIODS:
        raise ValidationError(f"Unsupported frequency for scheduled exports: {frequency.value}")
    next_run = ensure_utc(now) + _PERIODS[frequency]
    return next_run.replace(hour=hour, minute=0, second=0, microsecond=0)


def _default_templates(now: datetime) -> List[ExportTemplate]:
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end_of_month = start_of_month + relativedelta(months=1, days=-1)
    start_of_year = start_of_month.replace(month=1)

    return [
        ExportTemplate(
            id="monthly-summary",
            name="Monthly Summary",
            description="Complete monthly financial summary with charts and transactions",
            options=ExportOptions(
                start_date=start_of_month,
                end_date=end_of_month,
                format=ExportFormat.PDF,
                include_charts=True,
                include_transactions=True,
                include_accounts=True,
                include_investments=True,
                include_budgets=True,
                group_by=GroupBy.CATEGORY,
            ),
            is_default=True,
            created_at=now,
        ),
        ExportTemplate(
            id="transaction-report",
            name="Transaction Report",
            description="Detailed transaction listing for specified period",
            options=ExportOptions(
                start_date=start_of_month,
                end_date=end_of_month,
                format=ExportFormat.CSV,
                include_charts=False,
                include_transactions=True,
                include_accounts=False,
                include_investments=False,
                include_budgets=False,
                group_by=GroupBy.NONE,
            ),
            is_default=True,
            created_at=now,
        ),
        ExportTemplate(
            id="investment-portfolio",
            name="Investment Portfolio",
            description="Investment portfolio overview with performance charts",
            options=ExportOptions(
                start_date=start_of_year,
                end_date=now,
                format=ExportFormat.PDF,
                include_charts=True,
                include_transactions=False,
                include_accounts=False,
                include_investments=True,
                include_budgets=False,
                group_by=GroupBy.NONE,
            ),
            is_default=True,
            created_at=now,
        ),
    ]


class ExportStore:
    """
    CRUD over export templates and simple scheduled exports.

    Without a storage adapter the store keeps everything in memory and
    writes are dropped.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
        report_hour: Optional[int] = None,
    ):
        self.storage = storage
        self._clock = clock or utcnow
        self._id_factory = id_factory or epoch_id(self._clock)
        self.report_hour = settings.default_report_hour if report_hour is None else report_hour
        self._templates: List[ExportTemplate] = []
        self._scheduled: List[ScheduledReport] = []

        self._load()
        self._seed_default_templates()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        try:
            raw_reports = load_json(self.storage, SCHEDULED_REPORTS_KEY, [])
            self._scheduled = [ScheduledReport.model_validate(r) for r in raw_reports]
        except (PydanticValidationError, TypeError) as e:
            logger.error(f"Error loading scheduled exports: {e}")
            self._scheduled = []

        try:
            raw_templates = load_json(self.storage, EXPORT_TEMPLATES_KEY, [])
            self._templates = [ExportTemplate.model_validate(t) for t in raw_templates]
        except (PydanticValidationError, TypeError) as e:
            logger.error(f"Error loading export templates: {e}")
            self._templates = []

    def _save(self) -> None:
        save_json(self.storage, SCHEDULED_REPORTS_KEY, [r.to_storage() for r in self._scheduled])
        save_json(self.storage, EXPORT_TEMPLATES_KEY, [t.to_storage() for t in self._templates])

    def _seed_default_templates(self) -> None:
        if self._templates:
            return
        self._templates = _default_templates(ensure_utc(self._clock()))
        self._save()
        logger.info(f"Seeded {len(self._templates)} default export templates")

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_templates(self) -> List[ExportTemplate]:
        """Defaults first, then alphabetical by name."""
        return sorted(self._templates, key=lambda t: (not t.is_default, t.name.lower()))

    def get_template(self, template_id: str) -> Optional[ExportTemplate]:
        return next((t for t in self._templates if t.id == template_id), None)

    def create_template(
        self,
        name: str,
        options: Union[ExportOptions, Dict[str, Any]],
        description: str = "",
        is_default: bool = False,
    ) -> ExportTemplate:
        template = ExportTemplate(
            id=self._id_factory(),
            name=name,
            description=description,
            options=ExportOptions.model_validate(options),
            is_default=is_default,
            created_at=ensure_utc(self._clock()),
        )
        self._templates.append(template)
        self._save()
        return template

    def update_template(self, template_id: str, updates: Dict[str, Any]) -> Optional[ExportTemplate]:
        for index, template in enumerate(self._templates):
            if template.id == template_id:
                updated = template.merged(updates)
                self._templates[index] = updated
                self._save()
                return updated
        return None

    def delete_template(self, template_id: str) -> bool:
        for index, template in enumerate(self._templates):
            if template.id == template_id:
                del self._templates[index]
                self._save()
                return True
        return False

    # ------------------------------------------------------------------
    # Scheduled exports
    # ------------------------------------------------------------------

    def calculate_next_run(self, frequency: Frequency) -> datetime:
        return next_export_run(frequency, self._clock(), self.report_hour)

    def get_scheduled_reports(self) -> List[ScheduledReport]:
        return sorted(self._scheduled, key=lambda r: ensure_utc(r.next_run))

    def get_scheduled_report(self, report_id: str) -> Optional[ScheduledReport]:
        return next((r for r in self._scheduled if r.id == report_id), None)

    def create_scheduled_report(
        self,
        name: str,
        frequency: Frequency,
        options: Union[ExportOptions, Dict[str, Any]],
        email: str = "",
        is_active: bool = True,
    ) -> ScheduledReport:
        report = ScheduledReport(
            id=self._id_factory(),
            name=name,
            frequency=frequency,
            email=email,
            options=ExportOptions.model_validate(options),
            next_run=self.calculate_next_run(frequency),
            is_active=is_active,
            created_at=ensure_utc(self._clock()),
        )
        self._scheduled.append(report)
        self._save()
        return report

    def update_scheduled_report(self, report_id: str, updates: Dict[str, Any]) -> Optional[ScheduledReport]:
        """
        Partial merge. ``nextRun`` is recomputed from the clock only when the
        update carries a frequency.
        """
        for index, report in enumerate(self._scheduled):
            if report.id != report_id:
                continue
            updated = report.merged(updates)
            if any(ScheduledReport.field_name(k) == "frequency" and v for k, v in updates.items()):
                updated = updated.model_copy(update={"next_run": self.calculate_next_run(updated.frequency)})
            self._scheduled[index] = updated
            self._save()
            return updated
        return None

    def delete_scheduled_report(self, report_id: str) -> bool:
        for index, report in enumerate(self._scheduled):
            if report.id == report_id:
                del self._scheduled[index]
                self._save()
                return True
        return False

    def get_due_reports(self) -> List[ScheduledReport]:
        now = ensure_utc(self._clock())
        return [r for r in self._scheduled if r.is_active and ensure_utc(r.next_run) <= now]

    def send_scheduled_report(self, report_id: str) -> bool:
        """
        Mark a scheduled export as delivered: stamps ``lastRun`` and advances
        ``nextRun``. Delivery itself is simulated (logged).
        """
        for index, report in enumerate(self._scheduled):
            if report.id != report_id:
                continue
            if not report.is_active:
                return False
            logger.info(f"Sending scheduled report '{report.name}' to {report.email or '(no recipient)'}")
            self._scheduled[index] = report.model_copy(update={
                "last_run": ensure_utc(self._clock()),
                "next_run": self.calculate_next_run(report.frequency),
            })
            self._save()
            return True
        return False

    def skip_scheduled_report(self, report_id: str) -> Optional[ScheduledReport]:
        """Advance ``nextRun`` one period without recording a delivery."""
        for index, report in enumerate(self._scheduled):
            if report.id == report_id:
                self._scheduled[index] = report.model_copy(
                    update={"next_run": self.calculate_next_run(report.frequency)}
                )
                self._save()
                return self._scheduled[index]
        return None


DataProvider = Callable[[], Union[FinancialData, Awaitable[FinancialData]]]


class ExportScheduler:
    """
    Background task that delivers due scheduled exports.

    Each due export is generated with its stored options, handed to the
    outbox, then marked sent. A failing export is logged and does not stop
    the others.
    """

    def __init__(
        self,
        store: ExportStore,
        export_service: ExportService,
        data_provider: DataProvider,
        outbox: Optional[ReportOutbox] = None,
        check_interval_seconds: Optional[int] = None,
    ):
        self.store = store
        self.export_service = export_service
        self.data_provider = data_provider
        self.outbox = outbox
        self.check_interval_seconds = (
            check_interval_seconds or settings.export_check_interval_seconds
        )
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def _get_data(self) -> FinancialData:
        data = self.data_provider()
        if inspect.isawaitable(data):
            data = await data
        return data

    async def deliver(self, report: ScheduledReport) -> bool:
        data = await self._get_data()
        result = self.export_service.export_data(data, report.options)
        if self.outbox is not None:
            await self.outbox.deliver(result, {
                "scheduled_report_id": report.id,
                "name": report.name,
                "email": report.email,
            })
        return self.store.send_scheduled_report(report.id)

    async def check_due_reports(self) -> int:
        """Deliver every due export once. Returns how many were delivered."""
        delivered = 0
        for report in self.store.get_due_reports():
            try:
                if await self.deliver(report):
                    delivered += 1
            except Exception as e:
                logger.error(f"Scheduled export '{report.name}' ({report.id}) failed: {e}", exc_info=True)
                self.store.skip_scheduled_report(report.id)
        return delivered

    async def run_loop(self):
        while self.running:
            try:
                delivered = await self.check_due_reports()
                if delivered:
                    logger.info(f"Delivered {delivered} scheduled export(s)")
            except Exception as e:
                logger.error(f"Error in export scheduler loop: {e}", exc_info=True)

            await asyncio.sleep(self.check_interval_seconds)

    async def start(self):
        if self.running:
            return

        self.running = True
        self.task = asyncio.create_task(self.run_loop())
        logger.info(f"Export scheduler started - checking every {self.check_interval_seconds}s")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Export scheduler stopped")
