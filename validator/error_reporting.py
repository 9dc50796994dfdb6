"""
Error Reporting for Crowdfund Validators

This module provides centralized collection, aggregation and reporting of
validator rejections. Every rejection is recorded as an ErrorReport tagged
with its taxonomy category (authorization, state, schema, accounting,
deadline, reference, invalid action) so operators can see why candidate
transactions are being refused.

Features:
- Unified collection from the engine and all rules
- Categorization by error class and severity
- Text and JSON reports
- Per-code handler callbacks
"""

import json
import logging
import time
import traceback
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from ledger.exceptions import (
    AccountingError,
    AuthorizationError,
    ConfigurationError,
    DeadlineError,
    InvalidActionError,
    ReferenceError,
    SchemaError,
    StateError,
    ValidationError,
)


class ReportFormat(Enum):
    """Available report formats."""
    TEXT = "text"
    JSON = "json"


class ErrorSeverity(Enum):
    """Error severity levels."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Taxonomy categories of validator errors."""
    AUTHORIZATION = "authorization"
    STATE = "state"
    SCHEMA = "schema"
    ACCOUNTING = "accounting"
    DEADLINE = "deadline"
    REFERENCE = "reference"
    INVALID_ACTION = "invalid_action"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class ErrorContext(Enum):
    """Where the error occurred."""
    SPEND = "spend"
    MINT = "mint"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


# Most specific class first
_CATEGORY_BY_ERROR = [
    (AuthorizationError, ErrorCategory.AUTHORIZATION),
    (StateError, ErrorCategory.STATE),
    (SchemaError, ErrorCategory.SCHEMA),
    (AccountingError, ErrorCategory.ACCOUNTING),
    (DeadlineError, ErrorCategory.DEADLINE),
    (ReferenceError, ErrorCategory.REFERENCE),
    (InvalidActionError, ErrorCategory.INVALID_ACTION),
    (ConfigurationError, ErrorCategory.CONFIGURATION),
]


def categorize(error: BaseException) -> ErrorCategory:
    """Map an exception onto its taxonomy category."""
    for error_type, category in _CATEGORY_BY_ERROR:
        if isinstance(error, error_type):
            return category
    return ErrorCategory.SYSTEM


@dataclass
class ErrorReport:
    """Error report structure."""
    report_id: str
    timestamp: float
    context: ErrorContext
    component: str
    operation: str
    severity: ErrorSeverity
    category: ErrorCategory
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def __post_init__(self):
        """Initialize derived fields."""
        if not self.report_id:
            self.report_id = f"{self.context.value}_{int(time.time() * 1000000)}"
        if not self.timestamp:
            self.timestamp = time.time()


@dataclass
class ErrorSummary:
    """Summary statistics for error reporting."""
    total_errors: int
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    by_component: Dict[str, int] = field(default_factory=dict)
    most_common_codes: List[tuple] = field(default_factory=list)


class ErrorReporter:
    """
    Centralized error reporting for the validators.

    Collects and categorizes errors from the engine and its rules and
    produces summaries and reports.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize error reporter.

        Args:
            config: Optional configuration dictionary
        """
        self.config = config or {}
        self.logger = logging.getLogger("validator.error_reporting")

        self.error_reports: List[ErrorReport] = []
        self.max_stored_reports = self.config.get("max_stored_reports", 10000)

        self.error_handlers: Dict[str, List[Callable[[ErrorReport], None]]] = defaultdict(list)

        self.stats = {
            "reports_created": 0,
            "start_time": time.time()
        }

    def report_error(self,
                     context: ErrorContext,
                     component: str,
                     operation: str,
                     error: Union[Exception, str],
                     severity: ErrorSeverity = ErrorSeverity.ERROR,
                     category: Optional[ErrorCategory] = None,
                     code: Optional[str] = None,
                     details: Optional[Dict[str, Any]] = None) -> str:
        """
        Report an error to the central reporting system.

        Args:
            context: Where the error occurred
            component: Component name (rule or engine)
            operation: Operation being performed (action name)
            error: Exception object or error message
            severity: Error severity level
            category: Taxonomy category, derived from the exception if omitted
            code: Error code, derived from the exception if omitted
            details: Additional error details

        Returns:
            Unique report ID
        """
        if isinstance(error, Exception):
            message = str(error)
            stack_trace = None
            if not isinstance(error, ValidationError):
                stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            code = code or getattr(error, "code", error.__class__.__name__)
            category = category or categorize(error)
        else:
            message = str(error)
            stack_trace = None
            code = code or "GENERIC_ERROR"
            category = category or ErrorCategory.SYSTEM

        report = ErrorReport(
            report_id="",
            timestamp=time.time(),
            context=context,
            component=component,
            operation=operation,
            severity=severity,
            category=category,
            code=code,
            message=message,
            details=details or {},
            stack_trace=stack_trace
        )

        self._store_report(report)
        self._trigger_handlers(report)
        self._log_error(report)

        return report.report_id

    def add_error_handler(self, error_code: str, handler: Callable[[ErrorReport], None]) -> None:
        """
        Add a custom error handler for specific error codes.

        Args:
            error_code: Error code to handle (use '*' for all errors)
            handler: Callback function to handle the error
        """
        self.error_handlers[error_code].append(handler)

    def get_error_summary(self,
                          since: Optional[float] = None,
                          category_filter: Optional[ErrorCategory] = None) -> ErrorSummary:
        """
        Generate error summary statistics.

        Args:
            since: Start timestamp filter
            category_filter: Filter by category

        Returns:
            ErrorSummary with statistics
        """
        reports = self.error_reports
        if since:
            reports = [r for r in reports if r.timestamp >= since]
        if category_filter:
            reports = [r for r in reports if r.category == category_filter]

        if not reports:
            return ErrorSummary(total_errors=0)

        return ErrorSummary(
            total_errors=len(reports),
            by_severity=dict(Counter(r.severity.value for r in reports)),
            by_category=dict(Counter(r.category.value for r in reports)),
            by_component=dict(Counter(r.component for r in reports)),
            most_common_codes=Counter(r.code for r in reports).most_common(10)
        )

    def generate_report(self, format: ReportFormat = ReportFormat.TEXT) -> str:
        """
        Generate an error report.

        Args:
            format: Output format for the report

        Returns:
            Generated report as string
        """
        if format == ReportFormat.TEXT:
            return self._generate_text_report(self.error_reports)
        if format == ReportFormat.JSON:
            return self._generate_json_report(self.error_reports)
        raise ValueError(f"Unsupported report format: {format}")

    def clear_reports(self) -> int:
        """Clear stored error reports and return how many were dropped."""
        cleared = len(self.error_reports)
        self.error_reports = []
        return cleared

    def get_statistics(self) -> Dict[str, Any]:
        """Get error reporter statistics."""
        return {
            **self.stats,
            "stored_reports": len(self.error_reports),
            "uptime_seconds": time.time() - self.stats["start_time"],
            "error_handlers": len(self.error_handlers)
        }

    # Private methods

    def _store_report(self, report: ErrorReport) -> None:
        """Store error report with size management."""
        self.error_reports.append(report)
        self.stats["reports_created"] += 1

        if len(self.error_reports) > self.max_stored_reports:
            excess = len(self.error_reports) - self.max_stored_reports
            self.error_reports = self.error_reports[excess:]

    def _trigger_handlers(self, report: ErrorReport) -> None:
        """Trigger registered error handlers."""
        handlers = self.error_handlers.get(report.code, []) + self.error_handlers.get("*", [])
        for handler in handlers:
            try:
                handler(report)
            except Exception as e:
                self.logger.error(f"Error handler failed for {report.code}: {e}")

    def _log_error(self, report: ErrorReport) -> None:
        """Log error report to standard logging system."""
        log_message = f"[{report.context.value}:{report.component}] {report.code}: {report.message}"

        if report.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(log_message, extra={"error_report_id": report.report_id})
        elif report.severity == ErrorSeverity.ERROR:
            self.logger.info(log_message, extra={"error_report_id": report.report_id})
        else:
            self.logger.warning(log_message, extra={"error_report_id": report.report_id})

    def _generate_text_report(self, reports: List[ErrorReport]) -> str:
        """Generate text format report."""
        lines = []
        lines.append("Crowdfund Validator Error Report")
        lines.append("=" * 50)
        lines.append(f"Generated: {datetime.now(timezone.utc).isoformat()}")
        lines.append(f"Total Reports: {len(reports)}")
        lines.append("")

        summary = self.get_error_summary()
        if summary.by_category:
            lines.append("By Category:")
            for category, count in summary.by_category.items():
                lines.append(f"  {category}: {count}")
            lines.append("")

        for report in sorted(reports, key=lambda r: r.timestamp, reverse=True)[:50]:
            lines.append(f"Report ID: {report.report_id}")
            lines.append(f"Component: {report.component}")
            lines.append(f"Operation: {report.operation}")
            lines.append(f"Code: {report.code}")
            lines.append(f"Message: {report.message}")
            lines.append("")

        return "\n".join(lines)

    def _generate_json_report(self, reports: List[ErrorReport]) -> str:
        """Generate JSON format report."""
        data = {
            "metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "total_reports": len(reports)
            },
            "summary": asdict(self.get_error_summary()),
            "reports": [asdict(report) for report in reports]
        }
        return json.dumps(data, indent=2, default=str)


# Global error reporter instance (singleton pattern)
_global_error_reporter: Optional[ErrorReporter] = None


def get_error_reporter() -> ErrorReporter:
    """Get the global error reporter instance."""
    global _global_error_reporter
    if _global_error_reporter is None:
        _global_error_reporter = ErrorReporter()
    return _global_error_reporter
