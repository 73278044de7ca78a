"""
Error handling and logging utilities with Slack webhook integration.
"""

import logging
from typing import Optional, Dict, Any
from functools import wraps
import httpx
from enum import Enum

from marketsharp_sync.config import settings


class ErrorSeverity(str, Enum):
    """Error severity levels"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MarketSharpSyncError(Exception):
    """Base exception for MarketSharp sync errors"""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.severity = severity
        self.context = context or {}
        super().__init__(self.message)


class RemoteApiError(MarketSharpSyncError):
    """Non-2xx response from the MarketSharp read API"""

    def __init__(self, status_code: int, body: str, resource: str = ""):
        self.status_code = status_code
        self.body = body
        self.resource = resource
        super().__init__(
            f"MarketSharp API error {status_code}: {body}",
            severity=ErrorSeverity.MEDIUM,
            context={"status_code": status_code, "resource": resource},
        )


class UploadError(MarketSharpSyncError):
    """Failure on the MarketSharp write path (token exchange or upload)"""

    def __init__(self, step: str, status_code: int, body: str):
        self.step = step
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"MarketSharp {step} error {status_code}: {body}",
            severity=ErrorSeverity.HIGH,
            context={"step": step, "status_code": status_code},
        )


class StoreError(MarketSharpSyncError):
    """Non-2xx response from the local store"""

    def __init__(self, operation: str, table: str, status_code: int, body: str):
        self.operation = operation
        self.table = table
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"Store {operation} on {table} failed ({status_code}): {body}",
            severity=ErrorSeverity.HIGH,
            context={"operation": operation, "table": table, "status_code": status_code},
        )


class TenantNotConfiguredError(MarketSharpSyncError):
    """Tenant has no MarketSharp credentials on file"""

    pass


class JobNotFoundError(MarketSharpSyncError):
    """Operational job does not exist for this tenant"""

    pass


class SlackNotifier:
    """Posts failure alerts to a Slack incoming webhook; logs only when unset"""

    def __init__(self, webhook_url: str = ""):
        self.webhook_url = webhook_url

    @staticmethod
    def format_message(
        error: Exception,
        source: str,
        severity: ErrorSeverity,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        lines = [
            f"*MarketSharp sync {severity.value.upper()}* in `{source}`",
            f"{type(error).__name__}: {error}",
        ]
        for key, value in (context or {}).items():
            lines.append(f"• {key}: {str(value)[:200]}")
        return "\n".join(lines)

    async def send_error(
        self,
        error: Exception,
        function_name: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log the alert and post it to Slack. Never raises."""
        message = self.format_message(error, function_name, severity, context)
        logging.error(message, extra={"severity": severity.value})

        if not self.webhook_url:
            return

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.webhook_url, json={"text": message})
        except httpx.HTTPError as e:
            logging.warning(f"Could not send Slack notification: {e}")
            return

        if not response.is_success:
            logging.warning(
                f"Slack notification failed: {response.status_code} - {response.text}"
            )


# Global notifier instance
slack_notifier = SlackNotifier(settings.slack_webhook_url)


def with_error_handling(
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    notify_slack: bool = True,
):
    """
    Log and alert on any exception from an async function, then re-raise.

    MarketSharpSyncError subclasses bring their own severity and context;
    anything else is reported at `severity` with a traceback.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                known = isinstance(e, MarketSharpSyncError)
                error_severity = e.severity if known else severity
                logging.error(
                    f"Error in {func.__name__}: {e}",
                    extra={"severity": error_severity.value},
                    exc_info=not known,
                )
                if notify_slack:
                    await slack_notifier.send_error(
                        error=e,
                        function_name=func.__name__,
                        severity=error_severity,
                        context=e.context if known else None,
                    )
                raise

        return wrapper

    return decorator


def safe_scheduled_job(func):
    """
    Keep a scheduled job's failure from reaching the scheduler.

    The error is logged and alerted; the next cron tick runs as usual.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        job_name = func.__name__
        logging.info(f"Starting scheduled job: {job_name}")

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logging.error(f"Scheduled job '{job_name}' failed: {e}", exc_info=True)
            await slack_notifier.send_error(
                error=e,
                function_name=f"scheduled_job:{job_name}",
                severity=ErrorSeverity.HIGH,
            )
            return None

        logging.info(f"Completed scheduled job: {job_name}")
        return result

    return wrapper


def setup_logging(level: str = "INFO"):
    """Configure application logging"""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
