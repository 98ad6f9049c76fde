"""
Structured JSON logging
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds timestamp, level and code location"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        # Timestamp in ISO 8601, UTC
        log_record['timestamp'] = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        # Process and thread
        log_record['process'] = {
            'id': record.process,
            'name': record.processName
        }

        log_record['thread'] = {
            'id': record.thread,
            'name': record.threadName
        }

        # Where the record was emitted
        log_record['location'] = {
            'file': record.pathname,
            'line': record.lineno,
            'function': record.funcName
        }


def setup_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure the root logger

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON output when True, plain text otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Drop handlers left by a previous setup
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    # JSON for log shippers, plain text for local runs
    if json_logs:
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)


def log_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    ip_address: str = None
):
    """Log an inbound HTTP request"""
    logger.info(
        "HTTP Request",
        extra={
            'http': {
                'method': method,
                'path': path,
                'status_code': status_code,
                'duration_ms': duration_ms
            },
            'ip_address': ip_address
        }
    )


def log_api_call(
    logger: logging.Logger,
    service: str,
    endpoint: str,
    status_code: int = None,
    duration_ms: float = None,
    error: str = None
):
    """
    Log an outbound call (webhook delivery, provider connection test, provider sync)

    Args:
        logger: Logger to use
        service: Target of the call (webhook id, provider id)
        endpoint: URL or operation name
        status_code: HTTP status code (optional)
        duration_ms: Duration in milliseconds (optional)
        error: Error message when the call failed (optional)
    """
    level = logging.WARNING if error else logging.INFO

    logger.log(
        level,
        f"Outbound call to {service}",
        extra={
            'api_call': {
                'service': service,
                'endpoint': endpoint,
                'status_code': status_code,
                'duration_ms': duration_ms,
                'error': error
            }
        }
    )


def log_security_event(
    logger: logging.Logger,
    event_type: str,
    api_key_id: str = None,
    ip_address: str = None,
    details: Dict[str, Any] = None,
    severity: str = "INFO"
):
    """
    Log a security event

    Args:
        logger: Logger to use
        event_type: api_key_issued, api_key_rejected, api_key_revoked, rate_limited...
        api_key_id: Key involved, never the key itself (optional)
        ip_address: Client IP (optional)
        details: Extra details (optional)
        severity: INFO, WARNING, ERROR, CRITICAL
    """
    level = getattr(logging, severity.upper(), logging.INFO)

    logger.log(
        level,
        f"Security Event: {event_type}",
        extra={
            'security': {
                'event_type': event_type,
                'api_key_id': api_key_id,
                'ip_address': ip_address,
                'details': details or {}
            }
        }
    )
