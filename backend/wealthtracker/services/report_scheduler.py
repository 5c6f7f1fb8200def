"""
Report Scheduler Service

Runs scheduled custom reports: computes their next run, polls for due
schedules, generates and delivers the output and keeps a bounded run
history under ``money_management_report_history``.
"""

import asyncio
import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError as PydanticValidationError

from wealthtracker.config import settings
from wealthtracker.constants import (
    ENTITY_KEY_PREFIX,
    REPORT_HISTORY_KEY,
    SCHEDULED_CUSTOM_REPORTS_KEY,
)
from wealthtracker.exceptions import NotFoundError
from wealthtracker.schemas.export import ExportFormat, ExportOptions, ExportResult, Frequency
from wealthtracker.schemas.finance import FinancialData
from wealthtracker.schemas.reporting import (
    DeliveryFormat,
    ReportHistoryEntry,
    ScheduledCustomReport,
)
from wealthtracker.services.custom_report_service import CustomReportService
from wealthtracker.services.export_service import ExportService, report_filename
from wealthtracker.services.host import PERMISSION_GRANTED, Notifier, ReportOutbox
from wealthtracker.services.key_value_store import KeyValueStore, load_json, save_json
from wealthtracker.timeutils import Clock, date_stamp, ensure_utc, epoch_id, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DAY_OF_WEEK = 1  # Monday
REPORT_NOTIFICATION_TAG = "scheduled-report"

# FinancialData slice -> storage key
_DATA_KEYS = {
    "transactions": f"{ENTITY_KEY_PREFIX}transactions",
    "accounts": f"{ENTITY_KEY_PREFIX}accounts",
    "investments": f"{ENTITY_KEY_PREFIX}investments",
    "budgets": f"{ENTITY_KEY_PREFIX}budgets",
    "goals": f"{ENTITY_KEY_PREFIX}goals",
    "categories": f"{ENTITY_KEY_PREFIX}categories",
}


def _last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _with_day(dt: datetime, day: int) -> datetime:
    """Set the day of month, clamped to the month's length (31 -> 28 in Feb)."""
    return dt.replace(day=min(day, _last_day_of_month(dt.year, dt.month)))


def _sunday_based_weekday(dt: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def calculate_next_run(
    report: ScheduledCustomReport,
    from_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Compute the next run for a schedule, strictly after ``now``.

    The configured HH:MM is applied to ``from_date`` (default ``now``) and
    pushed to the next day if it has already passed. Weekly schedules then
    advance to ``day_of_week`` (Sunday=0, default Monday), monthly ones to
    ``day_of_month`` (default 1, clamped to short months), quarterly ones to
    the first day of the next quarter and yearly ones to January 1.
    """
    now = ensure_utc(now or utcnow())
    base = ensure_utc(from_date) if from_date else now
    hours, minutes = (int(part) for part in report.time.split(":"))

    next_run = base.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    while next_run <= now:
        next_run += timedelta(days=1)

    frequency = Frequency(report.frequency)
    if frequency == Frequency.WEEKLY:
        target = DEFAULT_DAY_OF_WEEK if report.day_of_week is None else report.day_of_week
        while _sunday_based_weekday(next_run) != target:
            next_run += timedelta(days=1)

    elif frequency == Frequency.MONTHLY:
        day = report.day_of_month or 1
        next_run = _with_day(next_run, day)
        if next_run <= now:
            next_run = _with_day(next_run.replace(day=1) + relativedelta(months=1), day)

    elif frequency == Frequency.QUARTERLY:
        quarter_month0 = ((next_run.month - 1) // 3 + 1) * 3
        next_run = next_run.replace(
            year=next_run.year + quarter_month0 // 12,
            month=quarter_month0 % 12 + 1,
            day=1,
        )

    elif frequency == Frequency.YEARLY:
        next_run = next_run.replace(month=1, day=1)
        if next_run <= now:
            next_run = next_run.replace(year=next_run.year + 1)

    return next_run


class ScheduledReportService:
    """
    Scheduled custom report engine.

    Schedules live under ``money_management_scheduled_custom_reports``.
    ``initialize()`` runs an immediate check and then polls every
    ``check_interval_seconds``; due reports in one tick run one after the
    other and a failing report does not stop the rest.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        export_service: Optional[ExportService] = None,
        custom_reports: Optional[CustomReportService] = None,
        outbox: Optional[ReportOutbox] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
        history_limit: Optional[int] = None,
        check_interval_seconds: Optional[int] = None,
    ):
        self.storage = storage
        self._clock = clock or utcnow
        self.export_service = export_service or ExportService(clock=self._clock)
        self.custom_reports = custom_reports or CustomReportService(storage, clock=self._clock)
        self.outbox = outbox
        self.notifier = notifier
        self._id_factory = id_factory or epoch_id(self._clock)
        self.history_limit = history_limit or settings.report_history_limit
        self.check_interval_seconds = check_interval_seconds or settings.report_check_interval_seconds
        self.running = False
        self.task: Optional[asyncio.Task] = None

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def calculate_next_run(
        self, report: ScheduledCustomReport, from_date: Optional[datetime] = None
    ) -> datetime:
        return calculate_next_run(report, from_date, now=self._now())

    def get_scheduled_reports(self) -> List[ScheduledCustomReport]:
        raw = load_json(self.storage, SCHEDULED_CUSTOM_REPORTS_KEY, [])
        reports = []
        for item in raw if isinstance(raw, list) else []:
            try:
                reports.append(ScheduledCustomReport.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable scheduled report: {e}")
        return reports

    def get_scheduled_report(self, report_id: str) -> Optional[ScheduledCustomReport]:
        return next((r for r in self.get_scheduled_reports() if r.id == report_id), None)

    def _write(self, reports: List[ScheduledCustomReport]) -> None:
        save_json(self.storage, SCHEDULED_CUSTOM_REPORTS_KEY, [r.to_storage() for r in reports])

    def _replace(self, report: ScheduledCustomReport, insert: bool = True) -> None:
        reports = self.get_scheduled_reports()
        for index, existing in enumerate(reports):
            if existing.id == report.id:
                reports[index] = report
                break
        else:
            if not insert:
                return
            reports.append(report)
        self._write(reports)

    def save_scheduled_report(self, report: ScheduledCustomReport) -> ScheduledCustomReport:
        """Insert or replace by id, stamping ``updatedAt`` and recomputing ``nextRun``."""
        report = report.model_copy(update={
            "updated_at": self._now(),
            "next_run": self.calculate_next_run(report),
        })
        self._replace(report)
        return report

    def create_scheduled_report(self, **fields: Any) -> ScheduledCustomReport:
        now = self._now()
        report = ScheduledCustomReport.model_validate({
            **fields,
            "id": self._id_factory(),
            "next_run": now,
            "created_at": now,
            "updated_at": now,
        })
        report = self.save_scheduled_report(report)
        logger.info(
            f"Created scheduled report '{report.report_name}' ({report.frequency.value}), "
            f"next run {report.next_run.isoformat()}"
        )
        return report

    def update_scheduled_report(self, report_id: str, updates: Dict[str, Any]) -> Optional[ScheduledCustomReport]:
        existing = self.get_scheduled_report(report_id)
        if existing is None:
            return None
        return self.save_scheduled_report(existing.merged(updates, protected=("id", "created_at")))

    def delete_scheduled_report(self, report_id: str) -> bool:
        reports = self.get_scheduled_reports()
        remaining = [r for r in reports if r.id != report_id]
        if len(remaining) == len(reports):
            return False
        self._write(remaining)
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_report_history(self, report_id: Optional[str] = None) -> List[ReportHistoryEntry]:
        """Newest first, optionally for one schedule."""
        raw = load_json(self.storage, REPORT_HISTORY_KEY, [])
        history = []
        for item in raw if isinstance(raw, list) else []:
            try:
                history.append(ReportHistoryEntry.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable report history entry: {e}")
        if report_id is not None:
            history = [h for h in history if h.report_id == report_id]
        return history

    def _add_to_history(self, entry: ReportHistoryEntry) -> None:
        history = [entry] + self.get_report_history()
        save_json(
            self.storage,
            REPORT_HISTORY_KEY,
            [h.to_storage() for h in history[: self.history_limit]],
        )

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def load_financial_data(self) -> FinancialData:
        """Read the client's persisted records; unreadable slices are left out."""
        slices: Dict[str, Any] = {}
        for name, key in _DATA_KEYS.items():
            value = load_json(self.storage, key, None)
            if isinstance(value, list):
                slices[name] = value
        try:
            return FinancialData.model_validate(slices)
        except PydanticValidationError as e:
            logger.error(f"Stored financial data is unreadable: {e}")
            return FinancialData(transactions=[], accounts=[])

    async def _notify_recipients(self, report: ScheduledCustomReport, result: ExportResult) -> None:
        recipients = ", ".join(report.email_recipients) or "(no recipients)"
        logger.info(f"Email delivery of {result.filename} simulated for {recipients}")
        if self.notifier is None or self.notifier.permission != PERMISSION_GRANTED:
            return
        await self.notifier.notify(
            "Report ready",
            f"{report.report_name} is ready to send to {recipients}",
            icon=settings.notification_icon,
            tag=REPORT_NOTIFICATION_TAG,
        )

    async def run_scheduled_report(
        self, report: ScheduledCustomReport, data: Optional[FinancialData] = None
    ) -> ExportResult:
        """
        Generate and deliver one scheduled report.

        Success stamps ``lastRun``, advances ``nextRun`` and records a
        history entry. On failure the error is recorded in the history,
        ``nextRun`` still advances and the exception is re-raised.
        """
        logger.info(f"Running scheduled report: {report.report_name} ({report.id})")
        output_format = ExportFormat.CSV if report.delivery_format == DeliveryFormat.CSV else ExportFormat.PDF

        try:
            custom_report = self.custom_reports.get_custom_report(report.custom_report_id)
            if custom_report is None:
                raise NotFoundError(f"Custom report {report.custom_report_id} not found")

            if data is None:
                data = self.load_financial_data()
            report_data = self.custom_reports.generate_report_data(custom_report, data, now=self._now())

            date_range = report_data["dateRange"]
            options = ExportOptions(
                start_date=date_range["startDate"],
                end_date=date_range["endDate"],
                format=output_format,
                include_charts=True,
                include_transactions=True,
                include_accounts=True,
                include_budgets=True,
                custom_title=custom_report.name,
            )
            result = self.export_service.export_data(data, options)
            # <report name>_<YYYY_MM_DD>.<ext>
            title = f"{custom_report.name} {date_stamp(self._now())}"
            result = result.model_copy(update={"filename": report_filename(title, output_format.value)})

            if self.outbox is not None:
                await self.outbox.deliver(result, {
                    "scheduled_report_id": report.id,
                    "report_name": report.report_name,
                    "delivery_format": report.delivery_format.value,
                    "email_recipients": list(report.email_recipients),
                })
            if report.delivery_format == DeliveryFormat.EMAIL:
                await self._notify_recipients(report, result)

        except Exception as e:
            logger.error(f"Scheduled report '{report.report_name}' failed: {e}", exc_info=True)
            self._add_to_history(ReportHistoryEntry(
                report_id=report.id,
                report_name=report.report_name,
                run_time=self._now(),
                success=False,
                error=str(e),
            ))
            self._replace(
                report.model_copy(update={"next_run": self.calculate_next_run(report)}), insert=False
            )
            raise

        now = self._now()
        self._replace(report.model_copy(update={
            "last_run": now,
            "next_run": self.calculate_next_run(report),
        }), insert=False)
        self._add_to_history(ReportHistoryEntry(
            report_id=report.id,
            report_name=report.report_name,
            run_time=now,
            success=True,
            format=report.delivery_format.value,
        ))
        logger.info(f"Scheduled report '{report.report_name}' delivered as {result.filename}")
        return result

    def get_due_reports(self) -> List[ScheduledCustomReport]:
        now = self._now()
        return [r for r in self.get_scheduled_reports() if r.enabled and ensure_utc(r.next_run) <= now]

    async def check_and_run_due_reports(self) -> int:
        """Run every due schedule once. Returns how many succeeded."""
        succeeded = 0
        for report in self.get_due_reports():
            try:
                await self.run_scheduled_report(report)
                succeeded += 1
            except Exception:
                # Already logged and recorded in the history; keep going
                continue
        return succeeded

    async def run_loop(self):
        while self.running:
            try:
                await self.check_and_run_due_reports()
            except Exception as e:
                logger.error(f"Error in report scheduler loop: {e}", exc_info=True)

            await asyncio.sleep(self.check_interval_seconds)

    async def initialize(self):
        if self.running:
            return

        self.running = True
        self.task = asyncio.create_task(self.run_loop())
        logger.info(f"Report scheduler started - checking every {self.check_interval_seconds}s")

    async def destroy(self):
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Report scheduler stopped")
