"""Tests for the shared browser pool: lazy launch, per-page contexts, shutdown."""

import random
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from harvester.browser.session import LAUNCH_ARGS, BrowserPool
from harvester.core.config import BrowserConfig
from harvester.core.http import USER_AGENTS


class FakePlaywright:
    """Mocked patchright object graph: starter -> playwright -> browser -> contexts."""

    def __init__(self) -> None:
        self.contexts: list[MagicMock] = []

        self.browser = MagicMock(name="browser")
        self.browser.new_context = AsyncMock(side_effect=self._new_context)
        self.browser.close = AsyncMock()

        self.playwright = MagicMock(name="playwright")
        self.playwright.chromium.launch = AsyncMock(return_value=self.browser)
        self.playwright.stop = AsyncMock()

        self.starter = MagicMock(name="starter")
        self.starter.start = AsyncMock(return_value=self.playwright)

    async def _new_context(self, **kwargs: object) -> MagicMock:
        context = MagicMock(name=f"context{len(self.contexts)}")
        context.add_init_script = AsyncMock()
        context.close = AsyncMock()
        context.new_page = AsyncMock(return_value=MagicMock(name=f"page{len(self.contexts)}"))
        self.contexts.append(context)
        return context


@pytest.fixture
def fake_pw() -> "pytest.Generator[FakePlaywright]":  # type: ignore[type-arg]
    fake = FakePlaywright()
    with patch("harvester.browser.session.async_playwright", return_value=fake.starter):
        yield fake


# ---------------------------------------------------------------------------
# TestBrowserPool
# ---------------------------------------------------------------------------


class TestBrowserPool:
    def test_not_launched_until_used(self, fake_pw: FakePlaywright) -> None:
        pool = BrowserPool(BrowserConfig())
        assert pool.is_running is False
        fake_pw.starter.start.assert_not_called()

    async def test_page_opens_fresh_context(self, fake_pw: FakePlaywright) -> None:
        config = BrowserConfig(headless=False, timeout_ms=12000, viewport_width=1280, viewport_height=800)
        pool = BrowserPool(config, rng=random.Random(7))

        async with pool.page():
            assert pool.is_running is True
            assert pool.open_pages == 1

        fake_pw.playwright.chromium.launch.assert_awaited_once_with(
            headless=False, args=list(LAUNCH_ARGS),
        )
        kwargs = fake_pw.browser.new_context.call_args.kwargs
        assert kwargs["user_agent"] in USER_AGENTS
        assert kwargs["viewport"] == {"width": 1280, "height": 800}
        context = fake_pw.contexts[0]
        context.add_init_script.assert_awaited_once()
        context.set_default_timeout.assert_called_once_with(12000)
        context.close.assert_awaited_once()
        assert pool.open_pages == 0

    async def test_browser_launched_once(self, fake_pw: FakePlaywright) -> None:
        pool = BrowserPool(BrowserConfig())
        async with pool.page():
            pass
        async with pool.page():
            pass
        fake_pw.starter.start.assert_awaited_once()
        assert len(fake_pw.contexts) == 2

    async def test_context_released_on_error(self, fake_pw: FakePlaywright) -> None:
        pool = BrowserPool(BrowserConfig())
        with pytest.raises(RuntimeError, match="boom"):
            async with pool.page():
                raise RuntimeError("boom")
        fake_pw.contexts[0].close.assert_awaited_once()
        assert pool.open_pages == 0

    async def test_failed_launch_stops_driver(self, fake_pw: FakePlaywright) -> None:
        fake_pw.playwright.chromium.launch.side_effect = RuntimeError("chromium missing")
        pool = BrowserPool(BrowserConfig())

        for _ in range(3):
            with pytest.raises(RuntimeError, match="chromium missing"):
                await pool.acquire()

        assert fake_pw.starter.start.await_count == 3
        assert fake_pw.playwright.stop.await_count == 3
        assert pool.is_running is False

        await pool.shutdown()
        assert fake_pw.playwright.stop.await_count == 3

    @pytest.mark.parametrize("step", ["add_init_script", "new_page"])
    async def test_context_closed_when_page_setup_fails(self, fake_pw: FakePlaywright, step: str) -> None:
        async def broken_context(**kwargs: object) -> MagicMock:
            context = await fake_pw._new_context(**kwargs)
            getattr(context, step).side_effect = RuntimeError("target closed")
            return context

        fake_pw.browser.new_context.side_effect = broken_context
        pool = BrowserPool(BrowserConfig())

        with pytest.raises(RuntimeError, match="target closed"):
            await pool.acquire()

        fake_pw.contexts[0].close.assert_awaited_once()
        assert pool.open_pages == 0
        assert pool.is_running is True

    async def test_shutdown_closes_everything(self, fake_pw: FakePlaywright) -> None:
        pool = BrowserPool(BrowserConfig())
        page = await pool.acquire()
        assert page is not None

        await pool.shutdown()

        fake_pw.contexts[0].close.assert_awaited_once()
        fake_pw.browser.close.assert_awaited_once()
        fake_pw.playwright.stop.assert_awaited_once()
        assert pool.is_running is False
        assert pool.open_pages == 0

    async def test_shutdown_idempotent(self, fake_pw: FakePlaywright) -> None:
        async with BrowserPool(BrowserConfig()) as pool:
            async with pool.page():
                pass
        await pool.shutdown()
        fake_pw.browser.close.assert_awaited_once()

    async def test_shutdown_without_launch(self, fake_pw: FakePlaywright) -> None:
        await BrowserPool(BrowserConfig()).shutdown()
        fake_pw.starter.start.assert_not_called()
