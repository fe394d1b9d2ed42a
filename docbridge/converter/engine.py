"""Thread-pool engine for running conversions concurrently.

Adapters are blocking and share no state between calls, so each
conversion runs whole on one worker thread. Futures can be abandoned but
a conversion that has started runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

from docbridge.config.models import DocBridgeConfig
from docbridge.converter.models import ConversionResult, FormatTag
from docbridge.converter.orchestrator import Payload, convert, payload_path, resolve_tag
from docbridge.errors import Direction

logger = logging.getLogger(__name__)


class ConversionEngine:
    """Owns a worker pool separate from the caller's threads or event loop."""

    def __init__(self, max_workers: int | None = None, config: DocBridgeConfig | None = None) -> None:
        self.config = config or DocBridgeConfig()
        self.max_workers = max_workers or self.config.engine.max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="docbridge"
        )
        logger.debug("conversion engine started with %d worker(s)", self.max_workers)

    def submit(
        self,
        direction: str | Direction,
        format_tag: str | FormatTag,
        payload: Payload,
    ) -> Future[ConversionResult]:
        # parse up front so a bad tag fails in the caller, not in the future
        tag = resolve_tag(format_tag, Direction(direction), payload_path(payload))
        return self._executor.submit(convert, direction, tag, payload, config=self.config)

    async def convert_async(
        self,
        direction: str | Direction,
        format_tag: str | FormatTag,
        payload: Payload,
    ) -> ConversionResult:
        tag = resolve_tag(format_tag, Direction(direction), payload_path(payload))
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, partial(convert, direction, tag, payload, config=self.config)
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with ``wait`` block until in-flight conversions finish."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> ConversionEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)
