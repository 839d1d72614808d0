"""Error recording and recovery for pipeline components."""

import functools
import traceback
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Callable, Any
from dataclasses import dataclass, field
from enum import Enum

from ..logging_config import get_logger

logger = get_logger("error_handler")


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComponentStatus(Enum):
    """Component status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class ErrorRecord:
    """Record of an error occurrence."""
    component_name: str
    error: Exception
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=datetime.now)
    traceback_str: str = ""
    recovery_attempted: bool = False
    recovery_successful: bool = False


class ErrorHandler:
    """Central error bookkeeping with per-component recovery callbacks.

    Recovery callbacks run synchronously inside ``handle_error`` so that
    cleanup has finished before the failing cycle returns.
    """

    def __init__(self, max_records: int = 500):
        self.max_records = max_records
        self.error_records: List[ErrorRecord] = []
        self.component_error_counts: Dict[str, int] = {}
        self.component_recovery_attempts: Dict[str, int] = {}
        self.component_max_recovery_attempts: Dict[str, int] = {}
        self.recovery_callbacks: Dict[str, List[Callable[[], None]]] = {}
        self.component_status: Dict[str, ComponentStatus] = {}

    def register_component(self, component_name: str, max_recovery_attempts: int = 3) -> None:
        """Register a component for error handling."""
        self.component_error_counts.setdefault(component_name, 0)
        self.component_recovery_attempts[component_name] = 0
        self.component_max_recovery_attempts[component_name] = max_recovery_attempts
        self.recovery_callbacks.setdefault(component_name, [])
        self.component_status[component_name] = ComponentStatus.HEALTHY
        logger.debug(f"Component registered: {component_name}")

    def register_recovery_callback(self, component_name: str, callback: Callable[[], None]) -> None:
        """Register a recovery callback for a component."""
        self.recovery_callbacks.setdefault(component_name, []).append(callback)
        logger.debug(f"Recovery callback registered for {component_name}")

    def unregister_recovery_callback(self, component_name: str, callback: Callable[[], None]) -> None:
        """Remove a previously registered recovery callback."""
        callbacks = self.recovery_callbacks.get(component_name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def handle_error(self, component_name: str, error: Exception,
                     severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> bool:
        """Record an error and attempt recovery. Returns True if recovery ran cleanly."""
        error_record = ErrorRecord(
            component_name=component_name,
            error=error,
            severity=severity,
            traceback_str="".join(traceback.format_exception(type(error), error, error.__traceback__))
        )

        self.error_records.append(error_record)
        if len(self.error_records) > self.max_records:
            self.error_records.pop(0)

        self.component_error_counts[component_name] = self.component_error_counts.get(component_name, 0) + 1

        if severity == ErrorSeverity.CRITICAL:
            self.component_status[component_name] = ComponentStatus.FAILED
        elif severity in (ErrorSeverity.HIGH, ErrorSeverity.MEDIUM):
            self.component_status[component_name] = ComponentStatus.DEGRADED

        logger.error(f"Error in {component_name}: {error} (Severity: {severity.value})")

        return self._attempt_recovery(error_record)

    def _attempt_recovery(self, error_record: ErrorRecord) -> bool:
        component_name = error_record.component_name
        callbacks = self.recovery_callbacks.get(component_name)
        if not callbacks:
            return False

        max_attempts = self.component_max_recovery_attempts.get(component_name, 3)
        attempts = self.component_recovery_attempts.get(component_name, 0)
        if attempts >= max_attempts:
            logger.warning(f"Max recovery attempts reached for {component_name}")
            return False

        self.component_recovery_attempts[component_name] = attempts + 1
        error_record.recovery_attempted = True

        try:
            for callback in callbacks:
                callback()
        except Exception as e:
            logger.error(f"Recovery failed for {component_name}: {e}")
            return False

        error_record.recovery_successful = True
        logger.info(f"Recovery attempted for {component_name} (Attempt {attempts + 1})")
        return True

    def mark_healthy(self, component_name: str) -> None:
        """Mark a component healthy after a clean cycle and reset its recovery budget."""
        if self.component_status.get(component_name) != ComponentStatus.HEALTHY:
            self.component_status[component_name] = ComponentStatus.HEALTHY
            self.component_recovery_attempts[component_name] = 0

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics."""
        return {
            "total_errors": len(self.error_records),
            "component_error_counts": dict(self.component_error_counts),
            "component_recovery_attempts": dict(self.component_recovery_attempts),
            "component_status": {name: status.value for name, status in self.component_status.items()}
        }

    def reset_error_counts(self, component_name: Optional[str] = None) -> None:
        """Reset error counts for a component or all components."""
        components = [component_name] if component_name else list(self.component_error_counts)
        for component in components:
            if component in self.component_error_counts:
                self.component_error_counts[component] = 0
                self.component_recovery_attempts[component] = 0
                self.component_status[component] = ComponentStatus.HEALTHY

    def get_component_health(self) -> Dict[str, ComponentStatus]:
        """Get health status of all registered components."""
        return self.component_status

    def get_error_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Get summary of errors in the last N hours."""
        cutoff_time = datetime.now() - timedelta(hours=hours)
        recent_errors = [e for e in self.error_records if e.timestamp >= cutoff_time]

        component_counts: Dict[str, int] = {}
        severity_counts = {severity.value: 0 for severity in ErrorSeverity}

        for error in recent_errors:
            component_counts[error.component_name] = component_counts.get(error.component_name, 0) + 1
            severity_counts[error.severity.value] += 1

        return {
            "total_errors": len(recent_errors),
            "component_counts": component_counts,
            "severity_counts": severity_counts,
            "time_period_hours": hours
        }


# Shared error handler instance
global_error_handler = ErrorHandler()


def with_error_handling(component: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                        error_handler: Optional[ErrorHandler] = None,
                        default: Any = None):
    """Decorator that records exceptions with the error handler.

    Critical errors are re-raised; anything else is swallowed and
    ``default`` is returned instead.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            handler = error_handler or global_error_handler
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handler.handle_error(component, e, severity)
                if severity == ErrorSeverity.CRITICAL:
                    raise
                return default
        return wrapper
    return decorator
