"""
Structured logging, Prometheus metrics and health probes.
"""

from .health import HealthChecker
from .logger import log_operation, setup_logger
from .metrics import PipelineMetrics

__all__ = ["HealthChecker", "PipelineMetrics", "log_operation", "setup_logger"]
