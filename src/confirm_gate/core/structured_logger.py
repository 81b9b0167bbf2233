"""
Structured Logging with Trace IDs
=================================

JSON-structured logging with per-request trace ids. Confirmation codes,
PINs and SMTP credentials never reach the log output: string values are
scrubbed and sensitive field names are masked.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable to store trace_id for current request
_trace_id_var: ContextVar[str | None] = ContextVar('trace_id', default=None)

_SECRET_PATTERNS = re.compile(
    r"(\b[A-Z]+-\d{4}-[A-Z]+\b|Bearer\s+[A-Za-z0-9._~+/=-]+)",
)

_SENSITIVE_FIELDS = frozenset({"pin", "new_pin", "code", "password", "smtp_password", "pin_hash", "pin_salt"})


def _redact_secrets(text: str) -> str:
    return _SECRET_PATTERNS.sub("[REDACTED]", text)


class StructuredLogger:
    """
    Structured logger that outputs JSON logs with trace IDs

    Example output:
    {
        "timestamp": "2026-10-19T10:30:45.123Z",
        "level": "INFO",
        "trace_id": "abc123",
        "component": "TokenStore",
        "message": "Token confirmed",
        "token": "3f2a..."
    }
    """

    def __init__(self, component: str, logger: logging.Logger | None = None) -> None:
        """
        Initialize structured logger

        Args:
            component: Component name (e.g., 'TokenStore', 'Vault', 'Runtime')
            logger: Optional existing logger (creates new if not provided)
        """
        self.component = component
        self.logger = logger or logging.getLogger(f"confirm_gate.{component}")

    def _log(self, level: str, message: str, *args, **kwargs) -> None:
        """
        Internal logging method

        Args:
            level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
            message: Log message, %-formatted with args when given
            **kwargs: Additional structured fields
        """
        log_method = getattr(self.logger, level.lower())
        if not self.logger.isEnabledFor(getattr(logging, level)):
            return

        exc_info = kwargs.pop('exc_info', False)
        if args:
            message = message % args

        trace_id = _trace_id_var.get()

        log_entry = {
            'timestamp': datetime.now(tz=UTC).isoformat(),
            'level': level,
            'component': self.component,
            'message': _redact_secrets(message),
        }

        if trace_id:
            log_entry['trace_id'] = trace_id

        for k, v in kwargs.items():
            if k in _SENSITIVE_FIELDS:
                log_entry[k] = "[REDACTED]"
            elif isinstance(v, str):
                log_entry[k] = _redact_secrets(v)
            else:
                log_entry[k] = v

        log_method(json.dumps(log_entry, default=str), exc_info=exc_info)

    def debug(self, message: str, *args, **kwargs) -> None:
        """Log debug message"""
        self._log('DEBUG', message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        """Log info message"""
        self._log('INFO', message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        """Log warning message"""
        self._log('WARNING', message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        """Log error message"""
        self._log('ERROR', message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs) -> None:
        """Log critical message"""
        self._log('CRITICAL', message, *args, **kwargs)


class TraceContext:
    """
    Context manager for setting trace_id for a request

    Usage:
        with TraceContext() as trace_id:
            # All logs within this context will include this trace_id
            logger.info("Processing request")
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or self._generate_trace_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = _trace_id_var.set(self.trace_id)
        return self.trace_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _trace_id_var.reset(self.token)

    @staticmethod
    def _generate_trace_id() -> str:
        return str(uuid.uuid4())[:8]


def current_trace_id() -> str | None:
    return _trace_id_var.get()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def get_logger(component: str) -> StructuredLogger:
    """
    Get a structured logger for a component

    Args:
        component: Component name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Route confirm_gate log records to stdout.

    With ``fmt="json"`` the structured entries are emitted untouched; ``text``
    prefixes them with a timestamp and level for interactive use.
    """
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))

    root = logging.getLogger("confirm_gate")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False
