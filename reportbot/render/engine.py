"""Shared Playwright browser engine."""

import asyncio
from typing import Any

from loguru import logger


class BrowserEngine:
    """
    Owned handle on a headless Chromium instance.

    The browser is expensive to start, so it is launched lazily on first use
    and reused by every render for the life of the process. Renders only ever
    get a fresh, isolated context; only ``shutdown`` closes the browser.
    """

    def __init__(self, headless: bool = True, launch_args: list[str] | None = None):
        self.headless = headless
        self.launch_args = list(launch_args or [])
        self._playwright: Any = None
        self._browser: Any = None
        self._init_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def init(self) -> None:
        """Launch the browser if it is not running yet."""
        if self._browser is not None:
            return

        async with self._init_lock:
            if self._browser is not None:
                return

            from playwright.async_api import async_playwright

            logger.info("Launching headless Chromium...")
            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=self.launch_args,
                )
            except Exception:
                await self._playwright.stop()
                self._playwright = None
                raise
            logger.info("Browser initialized")

    async def new_context(self, **options: Any) -> Any:
        """Open an isolated browser context; the caller must close it."""
        await self.init()
        return await self._browser.new_context(**options)

    async def shutdown(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Browser closed")
