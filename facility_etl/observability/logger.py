"""
Structured logging for facility-etl

Every record carries the pipeline fields operators filter on: the data source
of the run and the worker thread that handled the unit. Logs go to stderr so
that commands printing JSON on stdout (``health``) stay machine-readable.
Loggers are created once by the CLI and handed to components through
PipelineContext.
"""
import logging
import sys
import time

from pythonjsonlogger import jsonlogger

DEFAULT_LOGGER_NAME = "facility-etl"

JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(message)s"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter stamping run-wide fields onto every record

    Adds: timestamp, level, logger, module, function and worker thread.
    Run-wide values (data_source) arrive through the library's static_fields.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["worker"] = record.threadName


def _level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: str = "INFO",
    format_type: str = "json",
    data_source: str | None = None,
    stream=None,
) -> logging.Logger:
    """
    Configure the pipeline logger (idempotent: handlers are replaced)

    Args:
        name: Logger name; component loggers are its children
        level: Log level name, unknown names fall back to INFO
        format_type: "json" for production, "text" for local runs
        data_source: Stamped on every JSON record when given
        stream: Output stream (stderr by default)

    Returns:
        Configured logger instance
    """
    log_level = _level(level)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)
    if format_type == "json":
        static_fields = {"data_source": data_source} if data_source else {}
        handler.setFormatter(CustomJsonFormatter(
            fmt=JSON_FORMAT,
            datefmt="%Y-%m-%dT%H:%M:%S",
            static_fields=static_fields,
        ))
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class log_operation:
    """
    Log the outcome and duration of a coarse pipeline step

    The elapsed time is kept on ``duration`` so callers can feed it to metrics:

        with log_operation("Loading facilities", logger, unit=unit.name) as op:
            loader.load(batch)
        metrics.record_load(..., duration_seconds=op.duration)
    """

    def __init__(self, operation_name: str, logger: logging.Logger, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger
        self.extra_fields = extra_fields
        self.duration = 0.0
        self._started = 0.0

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.debug(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self._started
        elapsed = round(self.duration, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=elapsed, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=elapsed,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
            )
        return False
