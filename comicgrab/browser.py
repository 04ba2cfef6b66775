"""Browser session and automation driver lifecycle."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from .config import Settings
from .errors import DriverError

logger = logging.getLogger("comicgrab.browser")

DRIVER_STARTUP_SECONDS = 1.0


class DriverProcess:
    """Runs a Playwright driver server as a subprocess.

    The process lives until the one-shot stop signal is fired with
    :meth:`request_stop` (or :meth:`stop`, which also waits for the kill).
    """

    def __init__(
        self,
        driver_path: Path,
        host: str = "localhost",
        port: int = 4444,
        startup_delay: float = DRIVER_STARTUP_SECONDS,
    ) -> None:
        self.driver_path = driver_path
        self.host = host
        self.port = port
        self.startup_delay = startup_delay
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stop_signal = asyncio.Event()
        self._watcher: Optional[asyncio.Task] = None

    @property
    def ws_endpoint(self) -> str:
        return f"ws://{self.host}:{self.port}/"

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                str(self.driver_path),
                "run-server",
                "--port",
                str(self.port),
                "--host",
                self.host,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise DriverError(f"cannot start driver {self.driver_path}: {exc}") from exc
        self._watcher = asyncio.create_task(self._kill_on_signal())
        # The server needs a moment before it accepts connections.
        await asyncio.sleep(self.startup_delay)
        if not self.running:
            await self.stop()
            raise DriverError(f"driver {self.driver_path} exited during startup")
        logger.debug("Driver started at %s", self.ws_endpoint)

    async def _kill_on_signal(self) -> None:
        await self._stop_signal.wait()
        process = self._process
        if process is None or process.returncode is not None:
            return
        process.kill()
        await process.wait()
        logger.debug("Driver killed")

    def request_stop(self) -> None:
        self._stop_signal.set()

    async def stop(self) -> None:
        self.request_stop()
        if self._watcher is not None:
            await self._watcher


class BrowserSession:
    """Exclusive handle on one Firefox page.

    The session is meant to be owned by a single stage at a time; nothing in
    it is safe to drive from two coroutines concurrently.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._stack = AsyncExitStack()
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("browser session is not open")
        return self._page

    def _launch_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headless": self.settings.headless}
        if self.settings.browser_binary_path:
            options["executable_path"] = str(self.settings.browser_binary_path)
        return options

    async def open(self) -> "BrowserSession":
        settings = self.settings
        try:
            driver: Optional[DriverProcess] = None
            if settings.driver_path:
                driver = DriverProcess(
                    settings.driver_path, settings.driver_host, settings.driver_port
                )
                await driver.start()
                self._stack.push_async_callback(driver.stop)

            playwright = await self._stack.enter_async_context(async_playwright())
            if driver is not None:
                # Launch options travel to the driver server in this header.
                remote_options: Dict[str, Any] = {"headless": settings.headless}
                if settings.browser_binary_path:
                    remote_options["executablePath"] = str(settings.browser_binary_path)
                browser = await playwright.firefox.connect(
                    driver.ws_endpoint,
                    headers={"x-playwright-launch-options": json.dumps(remote_options)},
                )
            else:
                browser = await playwright.firefox.launch(**self._launch_options())
            self._stack.push_async_callback(browser.close)

            context_options: Dict[str, Any] = {}
            if settings.http_proxy:
                logger.debug("Browser proxy set: %s", settings.http_proxy)
                context_options["proxy"] = {"server": settings.http_proxy}
            context = await browser.new_context(**context_options)
            page = await context.new_page()
        except PlaywrightError as exc:
            await self._stack.aclose()
            raise DriverError(f"cannot open browser session: {exc}") from exc
        except BaseException:
            await self._stack.aclose()
            raise
        page.set_default_navigation_timeout(settings.navigation_timeout * 1000)
        self._page = page
        return self

    async def aclose(self) -> None:
        """Close the page, browser, Playwright and driver. Safe to call twice."""
        self._page = None
        await self._stack.aclose()

    async def __aenter__(self) -> "BrowserSession":
        return await self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
