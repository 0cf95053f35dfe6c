"""Render a dashboard print view into a PDF (or PNG) with Playwright.

One render walks through these states, any of which may end in ``failed``::

    launching -> authenticating -> navigating -> polling_readiness -> capturing -> done

Every wait is bounded by its own deadline. The browser context opened for a
render is always closed when the render ends; the shared engine is not.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from reportbot.config.schema import RendererConfig
from reportbot.errors import (
    AuthenticationError,
    RenderError,
    RenderTimeoutError,
    ReportbotError,
    UpstreamDataError,
)
from reportbot.render.engine import BrowserEngine


class RenderState(str, Enum):
    """Steps of a single render."""
    LAUNCHING = "launching"
    AUTHENTICATING = "authenticating"
    NAVIGATING = "navigating"
    POLLING_READINESS = "polling_readiness"
    CAPTURING = "capturing"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = (RenderState.DONE, RenderState.FAILED)


@dataclass
class RenderSession:
    """Per-call render state."""

    subject_id: str
    artifact: str = "pdf"
    state: RenderState = RenderState.LAUNCHING
    history: list[RenderState] = field(default_factory=lambda: [RenderState.LAUNCHING])
    error: ReportbotError | None = None

    def advance(self, state: RenderState) -> None:
        if self.state in _TERMINAL:
            raise RuntimeError(f"render for {self.subject_id} already {self.state.value}")
        self.state = state
        self.history.append(state)
        logger.debug(f"Render {self.subject_id}: {state.value}")

    def fail(self, error: ReportbotError) -> None:
        self.error = error
        if self.state not in _TERMINAL:
            self.advance(RenderState.FAILED)


def _ms(seconds: float) -> float:
    return seconds * 1000


class ReportRenderer:
    """
    Drives the print view of the dashboard to a document.

    The engine is injected and shared; each call opens its own context on it,
    so several subjects can render at once.
    """

    def __init__(self, engine: BrowserEngine, config: RendererConfig):
        self.engine = engine
        self.config = config

    async def render_pdf(self, subject_id: str) -> bytes:
        """Render the print view for ``subject_id`` as a landscape PDF."""
        return await self._render(subject_id, "pdf", self._capture_pdf)

    async def render_screenshot(self, subject_id: str) -> bytes:
        """Render the print view for ``subject_id`` as a full-page PNG."""
        viewport = {
            "width": self.config.screenshot_width,
            "height": self.config.screenshot_height,
        }
        return await self._render(
            subject_id, "screenshot", self._capture_screenshot, viewport=viewport
        )

    async def _render(
        self,
        subject_id: str,
        artifact: str,
        capture: Callable[[Any], Awaitable[bytes]],
        **context_options: Any,
    ) -> bytes:
        session = RenderSession(subject_id=subject_id, artifact=artifact)
        context = None
        try:
            context = await self.engine.new_context(**context_options)
            page = await context.new_page()

            session.advance(RenderState.AUTHENTICATING)
            await self._authenticate(page)

            session.advance(RenderState.NAVIGATING)
            url = self.config.print_url(subject_id)
            logger.info(f"Navigating to {url}")
            await page.goto(url, wait_until="networkidle", timeout=_ms(self.config.navigation_timeout_s))

            session.advance(RenderState.POLLING_READINESS)
            await self._wait_until_ready(page, subject_id)

            session.advance(RenderState.CAPTURING)
            logger.info("Report ready, waiting for charts to render...")
            await asyncio.sleep(self.config.settle_delay_s)
            data = await capture(page)

            session.advance(RenderState.DONE)
            logger.info(f"Rendered {artifact} for {subject_id} ({len(data)} bytes)")
            return data

        except ReportbotError as e:
            if e.step is None:
                e.step = session.state.value
            e.context.setdefault("subject_id", subject_id)
            session.fail(e)
            logger.error(f"Render {subject_id} failed while {e.step}: {e}")
            raise
        except Exception as e:
            error = RenderError(
                f"Rendering failed while {session.state.value}: {e}",
                step=session.state.value,
                context={"subject_id": subject_id},
            )
            session.fail(error)
            logger.error(f"Render {subject_id} failed while {error.step}: {e}")
            raise error from e
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.warning(f"Failed to close browser context for {subject_id}: {e}")

    # ========== Steps ==========

    async def _authenticate(self, page: Any) -> None:
        cfg = self.config
        await page.goto(
            cfg.base_url.rstrip("/") + "/",
            wait_until="networkidle",
            timeout=_ms(cfg.page_load_timeout_s),
        )

        if self._on_dashboard(page.url):
            logger.info("Already authenticated, skipping login")
            return

        try:
            await page.wait_for_selector(cfg.email_selector, timeout=_ms(cfg.login_form_timeout_s))
        except PlaywrightTimeoutError:
            raise AuthenticationError(
                "Login form not found - check that the dashboard is running",
                reason="form_missing",
                snapshot=await self._snapshot(page),
                context={"url": page.url},
            ) from None

        logger.info(f"Logging in as {cfg.username}")
        await page.fill(cfg.email_selector, cfg.username)
        await page.fill(cfg.password_selector, cfg.password)
        await page.click(cfg.submit_selector)

        outcome = await self._login_outcome(page)
        if outcome == "rejected":
            raise AuthenticationError("Login failed - check credentials", reason="rejected")
        if outcome is None and not self._on_dashboard(page.url):
            raise AuthenticationError(
                f"Login failed - stuck at {page.url}",
                reason="timeout",
                snapshot=await self._snapshot(page),
                context={"url": page.url},
            )
        logger.info("Authentication successful")

    async def _login_outcome(self, page: Any) -> str | None:
        """Race the dashboard redirect against the login error banner.

        Returns ``"dashboard"``, ``"rejected"``, or None when both waits ran
        out.
        """
        timeout = _ms(self.config.login_timeout_s)
        waiters = {
            asyncio.create_task(
                page.wait_for_url(f"**{self.config.dashboard_path}", timeout=timeout)
            ): "dashboard",
            asyncio.create_task(
                page.wait_for_selector(self.config.login_error_selector, timeout=timeout)
            ): "rejected",
        }
        pending = set(waiters)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                succeeded = [t for t in done if t.exception() is None]
                if succeeded:
                    return waiters[succeeded[0]]
            return None
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _wait_until_ready(self, page: Any, subject_id: str) -> None:
        cfg = self.config
        logger.info("Waiting for report to be ready...")

        elapsed = 0.0
        while elapsed < cfg.ready_timeout_s:
            if await page.evaluate(f"() => window.{cfg.ready_flag} === true"):
                return

            if await page.locator(cfg.data_error_selector).count() > 0:
                raise UpstreamDataError(
                    "Report page shows an error - data not available for this subject",
                    step=RenderState.POLLING_READINESS.value,
                    context={"subject_id": subject_id},
                )

            if await page.locator(cfg.spinner_selector).count() > 0:
                logger.debug(f"Still loading... ({elapsed:.0f}s elapsed)")

            await asyncio.sleep(cfg.ready_poll_interval_s)
            elapsed += cfg.ready_poll_interval_s

        snapshot = await self._snapshot(page)
        logger.warning(f"Page content on timeout: {snapshot}")
        raise RenderTimeoutError(
            f"Report failed to load within {cfg.ready_timeout_s:.0f}s - "
            "check that the dashboard data endpoints are responding",
            snapshot=snapshot,
            context={"subject_id": subject_id},
        )

    async def _capture_pdf(self, page: Any) -> bytes:
        cfg = self.config
        logger.info("Generating PDF...")
        return await page.pdf(
            format=cfg.page_format,
            landscape=cfg.landscape,
            print_background=True,
            margin={
                "top": cfg.margin,
                "bottom": cfg.margin,
                "left": cfg.margin,
                "right": cfg.margin,
            },
            display_header_footer=False,
        )

    async def _capture_screenshot(self, page: Any) -> bytes:
        logger.info("Taking screenshot...")
        return await page.screenshot(full_page=True, type="png")

    # ========== Helpers ==========

    def _on_dashboard(self, url: str) -> bool:
        return self.config.dashboard_path in url

    async def _snapshot(self, page: Any) -> str:
        try:
            content = await page.content()
        except Exception as e:
            logger.debug(f"Could not read page content: {e}")
            return ""
        return content[: self.config.snapshot_chars]
