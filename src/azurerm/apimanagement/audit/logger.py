"""Structured audit logging for reconciliation operations."""

from typing import Any

import logging
import structlog

from azurerm.apimanagement.models import AuditRecord


def configure_audit_logging(
    *,
    log_level: str | int,
    json_format: bool,
    service_name: str,
) -> None:
    # Resolve log level via stdlib logging (NOT structlog)
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    logging.basicConfig(level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


class AuditLogger:
    """Audit logger for create/read/update/delete/import operations."""

    def __init__(
        self,
        enabled: bool = True,
        log_attributes: bool = False,
        logger: Any = None,
    ):
        """Initialize audit logger.

        Args:
            enabled: Whether audit logging is enabled
            log_attributes: Whether to log resource attributes (policy XML)
            logger: Optional custom logger
        """
        self._enabled = enabled
        self._log_attributes = log_attributes
        self._logger = logger or structlog.get_logger("audit")

    def log_operation(
        self,
        operation: str,
        address: str,
        resource_id: str | None,
        outcome: str,
        latency_ms: float,
        attributes: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Log a completed operation.

        Args:
            operation: create, read, update, delete or import
            address: Resource address in configuration
            resource_id: Remote identifier after the operation ('' once removed)
            outcome: "ok", or "removed" when Read found the resource gone
            latency_ms: Operation latency
            attributes: Resource attributes after the operation

        Returns:
            AuditRecord for the logged operation
        """
        record = AuditRecord(
            operation=operation,
            address=address,
            resource_id=resource_id or None,
            outcome=outcome,
            latency_ms=latency_ms,
        )

        if self._enabled:
            log_data: dict[str, Any] = {
                "event": "resource_operation",
                "operation": operation,
                "address": address,
                "outcome": outcome,
                "latency_ms": round(latency_ms, 2),
            }

            if resource_id:
                log_data["resource_id"] = resource_id

            if self._log_attributes and attributes is not None:
                log_data["attributes"] = attributes

            # Drift is worth noticing
            if outcome == "removed":
                self._logger.warning(**log_data)
            else:
                self._logger.info(**log_data)

        return record

    def log_error(
        self,
        operation: str,
        address: str,
        error: str,
        latency_ms: float,
        resource_id: str | None = None,
    ) -> AuditRecord:
        """Log a failed operation.

        Args:
            operation: create, read, update, delete or import
            address: Resource address in configuration
            error: Error message
            latency_ms: Time until the failure
            resource_id: Remote identifier (if known)
        """
        record = AuditRecord(
            operation=operation,
            address=address,
            resource_id=resource_id or None,
            outcome="error",
            latency_ms=latency_ms,
            error=error,
        )

        if not self._enabled:
            return record

        log_data: dict[str, Any] = {
            "event": "resource_operation_error",
            "operation": operation,
            "address": address,
            "error": error,
            "latency_ms": round(latency_ms, 2),
        }

        if resource_id:
            log_data["resource_id"] = resource_id

        self._logger.error(**log_data)
        return record
