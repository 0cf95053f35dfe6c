"""Shared fixtures and fakes for scheduler, renderer and delivery tests."""

import asyncio
from pathlib import Path
from typing import Any, Sequence
from zoneinfo import ZoneInfo

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from reportbot.config.schema import RendererConfig
from reportbot.delivery.base import Attachment, DeliveryChannel
from reportbot.schedule.lock import ExecutionLock
from reportbot.schedule.storage import JsonScheduleStore
from reportbot.schedule.types import Schedule

BUSINESS_TZ = ZoneInfo("America/Sao_Paulo")
BASE_URL = "http://dash.local"


def make_schedule(**overrides: Any) -> Schedule:
    data: dict[str, Any] = {
        "id": "sched-1",
        "frequency": "weekly",
        "day_of_week": 1,
        "hour": 8,
        "minute": 0,
        "subject_id": "acme-001",
        "subject_name": "Acme Corp",
        "recipients": ["ops@acme.example"],
    }
    data.update(overrides)
    return Schedule(**data)


@pytest.fixture
def store(tmp_path: Path) -> JsonScheduleStore:
    return JsonScheduleStore(tmp_path / "schedules.json")


@pytest.fixture
def renderer_config() -> RendererConfig:
    return RendererConfig(
        base_url=BASE_URL,
        username="svc@example.com",
        password="secret",
        ready_poll_interval_s=0.01,
        ready_timeout_s=0.05,
        settle_delay_s=0,
    )


# ---------------------------------------------------------------------------
# Delivery / rendering doubles used by the executor and scheduler tests
# ---------------------------------------------------------------------------

class FakeChannel(DeliveryChannel):
    name = "fake"

    def __init__(self, configured: bool = True, error: Exception | None = None):
        self.configured = configured
        self.error = error
        self.sent: list[dict[str, Any]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        attachment: Attachment,
        inline_images: Sequence[Attachment] = (),
    ) -> None:
        if self.error:
            raise self.error
        self.sent.append({
            "recipients": recipients,
            "subject": subject,
            "html_body": html_body,
            "attachment": attachment,
        })


class FakeRenderer:
    def __init__(self, error: Exception | None = None, delay: float = 0):
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def render_pdf(self, subject_id: str) -> bytes:
        self.calls.append(subject_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return b"%PDF-1.4 fake"


class CountingLock(ExecutionLock):
    def __init__(self) -> None:
        super().__init__()
        self.releases: dict[str, int] = {}

    def release(self, schedule_id: str) -> None:
        self.releases[schedule_id] = self.releases.get(schedule_id, 0) + 1
        super().release(schedule_id)


# ---------------------------------------------------------------------------
# Playwright doubles
# ---------------------------------------------------------------------------

async def _never() -> None:
    await asyncio.Event().wait()


class FakeLocator:
    def __init__(self, count: int):
        self._count = count

    async def count(self) -> int:
        return self._count


class FakePage:
    """Just enough of ``playwright.async_api.Page`` for the renderer.

    ``login`` is the outcome of submitting the form: ``"dashboard"``,
    ``"rejected"`` or ``"timeout"``. ``ready_after`` is how many polls
    report not-ready before the flag flips; None means never.
    """

    def __init__(
        self,
        config: RendererConfig,
        *,
        authenticated: bool = False,
        login_form: bool = True,
        login: str = "dashboard",
        ready_after: int | None = 0,
        data_error: bool = False,
        content: str = "<html><body>loading</body></html>",
    ):
        self.config = config
        self.authenticated = authenticated
        self.login_form = login_form
        self.login = login
        self.ready_after = ready_after
        self.data_error = data_error
        self._content = content
        self.url = "about:blank"
        self.polls = 0
        self.visited: list[str] = []
        self.filled: dict[str, str] = {}
        self.pdf_options: dict[str, Any] | None = None

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> None:
        self.visited.append(url)
        if url == BASE_URL + "/":
            self.url = BASE_URL + ("/dashboard" if self.authenticated else "/login")
        else:
            self.url = url

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> object:
        if selector == self.config.email_selector:
            if not self.login_form:
                raise PlaywrightTimeoutError("login form did not appear")
            return object()
        if selector == self.config.login_error_selector:
            if self.login == "rejected":
                return object()
            if self.login == "dashboard":
                await _never()
            raise PlaywrightTimeoutError("no error banner")
        raise AssertionError(f"unexpected selector {selector}")

    async def wait_for_url(self, pattern: str, timeout: float | None = None) -> None:
        if self.login == "dashboard":
            self.url = BASE_URL + "/dashboard"
            return
        if self.login == "rejected":
            await _never()
        raise PlaywrightTimeoutError("still on login page")

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        pass

    async def evaluate(self, script: str) -> bool:
        self.polls += 1
        return self.ready_after is not None and self.polls > self.ready_after

    def locator(self, selector: str) -> FakeLocator:
        if selector == self.config.data_error_selector:
            return FakeLocator(1 if self.data_error else 0)
        return FakeLocator(0)

    async def content(self) -> str:
        return self._content

    async def pdf(self, **options: Any) -> bytes:
        self.pdf_options = options
        return b"%PDF-1.4 rendered"

    async def screenshot(self, **options: Any) -> bytes:
        return b"\x89PNG rendered"


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.close_count = 0

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.close_count += 1


class FakeEngine:
    def __init__(self, page: FakePage, launch_error: Exception | None = None):
        self.page = page
        self.launch_error = launch_error
        self.contexts: list[FakeContext] = []
        self.context_options: list[dict[str, Any]] = []
        self.shutdown_count = 0

    async def new_context(self, **options: Any) -> FakeContext:
        if self.launch_error:
            raise self.launch_error
        self.context_options.append(options)
        context = FakeContext(self.page)
        self.contexts.append(context)
        return context

    async def shutdown(self) -> None:
        self.shutdown_count += 1
