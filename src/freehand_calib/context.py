"""
Per-run pipeline context.

The configuration and the logger are passed explicitly to every component
(PatternRecognizer, CalibrationSolver, ResultComparator) instead of being
looked up from module globals, so two runs in the same process (e.g. in a
test session) never share mutable state.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

from freehand_calib.config.loader import CalibrationConfiguration
from freehand_calib.logging_utils import child_logger


@dataclass(frozen=True)
class PipelineContext:
    """
    Everything a component needs for one pipeline run.

    Attributes:
        configuration: Parsed configuration. Optional for components that
                       do not need it (the result comparator).
        logger: Logger for this run.
    """
    configuration: Optional[CalibrationConfiguration] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("freehand_calib"))

    def require_configuration(self) -> CalibrationConfiguration:
        """
        Return the configuration.

        Raises:
            ValueError: If the context was created without a configuration.
        """
        if self.configuration is None:
            raise ValueError("this component needs a PipelineContext with a configuration")
        return self.configuration

    def get_logger(self, component: str) -> logging.Logger:
        """Return the component's child logger."""
        return child_logger(self.logger, component)
