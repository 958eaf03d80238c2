"""
timing.py - Watchdog for blocking fetches
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


@contextmanager
def stuck_timer(label: str, seconds: Optional[float]) -> Iterator[None]:
    """
    Warn when the wrapped block runs longer than ``seconds``

    The block is not interrupted; the warning only tells the user which source
    is unresponsive. A falsy ``seconds`` disables the watchdog.
    """
    if not seconds:
        yield
        return

    timer = threading.Timer(seconds, logger.warning, args=("%s STUCK after %ss", label, seconds))
    timer.daemon = True
    timer.start()
    try:
        yield
    finally:
        timer.cancel()
