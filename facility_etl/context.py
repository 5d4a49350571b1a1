"""
Explicit handles shared by pipeline components.
"""

import logging
from dataclasses import dataclass, field

from facility_etl.observability.logger import DEFAULT_LOGGER_NAME, setup_logger
from facility_etl.observability.metrics import PipelineMetrics


@dataclass
class PipelineContext:
    """Logger and metrics passed into each component constructor."""

    logger: logging.Logger
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)

    @classmethod
    def create(
        cls,
        data_source: str = "unknown",
        level: str = "INFO",
        format_type: str = "json",
        name: str = DEFAULT_LOGGER_NAME,
    ) -> "PipelineContext":
        return cls(
            logger=setup_logger(name, level=level, format_type=format_type, data_source=data_source),
            metrics=PipelineMetrics(data_source=data_source),
        )

    def child(self, suffix: str) -> logging.Logger:
        """Component logger sharing the context logger's handlers."""
        return self.logger.getChild(suffix)
