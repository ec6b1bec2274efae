"""
Place Registry Backend — Best-Effort Side Effects
===================================================

What:  attempt() runs an operation whose failure must not undo the caller's
       work: admin notifications, staged asset relocation, file cleanup.
How:   Await, catch, log with the traceback, record a warning, return a flag.

    ok = await attempt("notify admins", notifier.notify_new_place(place), warnings)

Validation, authorization and database errors never go through here; they
propagate and abort the request before or during the record change.
"""

import logging
from typing import Any, Awaitable, List, Optional

logger = logging.getLogger(__name__)


async def attempt(
    description: str,
    operation: Awaitable[Any],
    warnings: Optional[List[str]] = None,
) -> bool:
    """
    Await operation; on failure log it and append description to warnings.

    Returns:
        True if the operation completed, False if it raised.
    """
    try:
        await operation
        return True
    except Exception as e:
        logger.warning("Best-effort step failed: %s (%s)", description, e, exc_info=True)
        if warnings is not None:
            warnings.append(f"{description} failed")
        return False
