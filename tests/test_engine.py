"""Shared browser engine lifecycle with a fake Playwright driver."""

import asyncio

import pytest

from reportbot.render.engine import BrowserEngine


class FakeBrowser:
    def __init__(self):
        self.contexts: list[dict] = []
        self.closed = False

    async def new_context(self, **options):
        self.contexts.append(options)
        return object()

    async def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.launches: list[dict] = []
        self.browsers: list[FakeBrowser] = []

    async def launch(self, **options):
        self.launches.append(options)
        await asyncio.sleep(0.01)
        if self.failures:
            self.failures -= 1
            raise RuntimeError("Executable doesn't exist")
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, chromium: FakeChromium):
        self.chromium = chromium
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class FakeDriver:
    def __init__(self, failures: int = 0):
        self.chromium = FakeChromium(failures)
        self.instances: list[FakePlaywright] = []

    def __call__(self):
        return self

    async def start(self) -> FakePlaywright:
        instance = FakePlaywright(self.chromium)
        self.instances.append(instance)
        return instance


@pytest.fixture
def driver(monkeypatch):
    fake = FakeDriver()
    monkeypatch.setattr("playwright.async_api.async_playwright", fake)
    return fake


@pytest.mark.asyncio
async def test_concurrent_contexts_share_one_launch(driver) -> None:
    engine = BrowserEngine(headless=True, launch_args=["--no-sandbox"])

    await asyncio.gather(*(engine.new_context() for _ in range(5)))

    assert len(driver.chromium.launches) == 1
    assert driver.chromium.launches[0] == {"headless": True, "args": ["--no-sandbox"]}
    assert len(driver.instances) == 1
    assert len(driver.chromium.browsers[0].contexts) == 5
    assert engine.is_running


@pytest.mark.asyncio
async def test_failed_launch_stops_playwright_and_can_retry(driver) -> None:
    driver.chromium.failures = 1
    engine = BrowserEngine()

    with pytest.raises(RuntimeError):
        await engine.new_context()

    assert not engine.is_running
    assert driver.instances[0].stopped == 1

    await engine.new_context(viewport={"width": 1200, "height": 800})

    assert engine.is_running
    assert len(driver.chromium.launches) == 2
    assert driver.chromium.browsers[0].contexts == [{"viewport": {"width": 1200, "height": 800}}]


@pytest.mark.asyncio
async def test_shutdown_resets_and_relaunches_on_next_use(driver) -> None:
    engine = BrowserEngine()
    await engine.new_context()

    await engine.shutdown()

    assert not engine.is_running
    assert driver.chromium.browsers[0].closed
    assert driver.instances[0].stopped == 1

    await engine.new_context()
    assert len(driver.chromium.launches) == 2


@pytest.mark.asyncio
async def test_shutdown_before_init_is_a_no_op(driver) -> None:
    await BrowserEngine().shutdown()
    assert driver.instances == []
