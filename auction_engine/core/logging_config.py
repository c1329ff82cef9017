"""
Structured logging configuration with trace IDs
"""
import contextvars
import logging
import sys
import uuid
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from auction_engine.core.database import utcnow

# Context variable to store trace ID across async calls
trace_id_var = contextvars.ContextVar('trace_id', default=None)

# Extra fields lifted from `logger.info(..., extra={...})`
_CONTEXT_FIELDS = ('listing_id', 'bid_id', 'order_id', 'user_id', 'duration_ms')


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding timestamp, trace ID and auction context"""

    def __init__(self, *args, service: str = 'auction-engine', **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = utcnow().isoformat()
        log_record['level'] = record.levelname

        trace_id = trace_id_var.get()
        if trace_id:
            log_record['trace_id'] = trace_id

        log_record['service'] = self.service

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)


def setup_logging(level: str = 'INFO', json_format: bool = True, service: str = 'auction-engine'):
    """Configure root logging once at startup"""
    if json_format:
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            service=service,
        )
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    # Replace handlers so reloads don't duplicate output
    root_logger.handlers = [console_handler]

    # Reduce noise from libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    return root_logger


def set_trace_id(trace_id: str):
    """Set trace ID for current context"""
    trace_id_var.set(trace_id)


def generate_trace_id() -> str:
    return str(uuid.uuid4())
