from __future__ import annotations

import logging
from typing import List, Optional

logger = logging.getLogger("tools.absent_alerts")


class GeneratorError(RuntimeError):
    pass


def report_error(errors: Optional[List[str]], message: str) -> None:
    """Log ``message`` and record it so the run fails without stopping early."""

    logger.error(message)
    if errors is not None:
        errors.append(message)
