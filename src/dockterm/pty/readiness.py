"""Readiness detection for the attached container shell.

Docker's hijacked attach stream can interleave JSON-ish framing
artifacts (the echoed attach options) with real terminal output. Those
chunks are classified as metadata and dropped before anything else
sees them. The first real chunk that looks like a shell prompt, or
that carries a substantial line of output, fires the session's
readiness latch.

The classification is string matching on chunk contents. Legitimate
output that happens to contain a marker such as ``"stdout":true`` is
dropped too; that is a known limitation of the heuristic.
"""

from __future__ import annotations

import asyncio
import logging
import re

logger = logging.getLogger(__name__)

_METADATA_MARKERS = (
    '"stream":',
    '"hijack":',
    '"stderr":',
    '"stdin":',
    '"stdout":',
    "stream:true",
    "hijack:true",
    "stdin:true",
    "stdout:true",
    "stderr:true",
)

_METADATA_LINE_RE = re.compile(r'[{"].*stream.*true.*[}"]')

PROMPT_MARKERS = ("root@", "# ", "$ ")

# More than this many characters (after trimming) counts as real output
SUBSTANTIAL_OUTPUT = 10


def is_runtime_metadata(text: str) -> bool:
    """True if a decoded chunk is attach framing rather than terminal output."""
    if any(marker in text for marker in _METADATA_MARKERS):
        return True
    if text.startswith("{") and '":true}' in text:
        return True
    if '{"' in text and '":true' in text:
        return True
    return _METADATA_LINE_RE.fullmatch(text.strip()) is not None


def signals_ready(text: str) -> bool:
    """True if a chunk shows the shell is up.

    Either a prompt fragment, or more than ``SUBSTANTIAL_OUTPUT``
    characters of trimmed text containing a line break. Metadata never
    qualifies, even when it contains a prompt-like substring.
    """
    if is_runtime_metadata(text):
        return False
    if any(marker in text for marker in PROMPT_MARKERS):
        return True
    return len(text.strip()) > SUBSTANTIAL_OUTPUT and "\n" in text


class ReadinessLatch:
    """One-shot readiness signal.

    ``fire()`` sets the latch at most once; later calls are no-ops and
    return False. ``wait()`` returns immediately once fired. A latch
    is never re-armed: the session creates a fresh one per container.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._fire_count = 0
        self._timer: asyncio.TimerHandle | None = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def fire(self, source: str = "output") -> bool:
        if self._event.is_set():
            return False
        self._event.set()
        self._fire_count += 1
        self.cancel_fallback()
        logger.debug("Readiness latch fired by %s", source)
        return True

    def arm_fallback(self, delay: float) -> None:
        """Fire the latch after ``delay`` seconds unless something else does first."""
        if self._event.is_set() or self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self.fire, "timeout")

    def cancel_fallback(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the latch. Returns False if ``timeout`` elapses first."""
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
