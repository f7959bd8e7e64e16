"""Playwright-backed host that runs the game-side harness in Chromium."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from core.driver import DriverCapture, DriverError, SyntheticInputEvent
from core.protocol import DEFAULT_VIEWPORT, Viewport
from runner.capture import NON_PNG_CAPTURE_MESSAGE, is_png_data_url
from runner.config import HeadlessRunnerConfig

LOGGER = logging.getLogger(__name__)

HARNESS_WINDOW_GLOBAL = "__starterHeadlessHarness"
CANVAS_ID = "game-canvas"
HARNESS_MISSING_MESSAGE = "Headless browser harness was not initialized"

_CALL_HARNESS_JS = """
async ({ globalName, method, args, missingMessage }) => {
  const harness = window[globalName];
  if (!harness) {
    throw new Error(missingMessage);
  }
  return await harness[method](...args);
}
"""

_DESTROY_HARNESS_JS = """
({ globalName }) => {
  const harness = window[globalName];
  if (harness) {
    harness.destroy();
  }
}
"""


def build_canvas_document_html(canvas_id: str = CANVAS_ID) -> str:
    return f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <style>
      html, body {{
        margin: 0;
        width: 100%;
        height: 100%;
        background: #020617;
      }}
      #{canvas_id} {{
        width: 100vw;
        height: 100vh;
        display: block;
      }}
    </style>
  </head>
  <body>
    <canvas id="{canvas_id}"></canvas>
  </body>
</html>"""


class PlaywrightHarnessDriver:
    """ScriptDriver that forwards each call to the in-page harness object."""

    def __init__(self, page: Page, *, global_name: str = HARNESS_WINDOW_GLOBAL):
        self._page = page
        self._global_name = global_name

    async def _call(self, method: str, *args: Any) -> Any:
        try:
            return await self._page.evaluate(
                _CALL_HARNESS_JS,
                {
                    "globalName": self._global_name,
                    "method": method,
                    "args": list(args),
                    "missingMessage": HARNESS_MISSING_MESSAGE,
                },
            )
        except PlaywrightError as exc:
            raise DriverError(f"Harness call {method} failed: {exc.message}") from exc

    async def bootstrap(self, canvas_id: str) -> None:
        await self._call("bootstrap", canvas_id)

    async def run_frames(self, frame_count: int) -> None:
        await self._call("runFrames", frame_count)

    async def apply_input(self, event: SyntheticInputEvent) -> None:
        await self._call("applyInput", event.to_payload())

    async def capture_snapshot(self) -> DriverCapture:
        payload = await self._call("captureSnapshot")
        if not isinstance(payload, dict):
            raise DriverError(NON_PNG_CAPTURE_MESSAGE)
        frame = payload.get("frame")
        image = payload.get("pngDataUrl")
        if not isinstance(frame, int) or isinstance(frame, bool):
            raise DriverError("Snapshot capture returned a non-integer frame")
        if not is_png_data_url(image):
            raise DriverError(NON_PNG_CAPTURE_MESSAGE)
        return DriverCapture(frame=frame, image=image)

    async def read_frame_count(self) -> int:
        value = await self._call("readFrameCount")
        if not isinstance(value, int) or isinstance(value, bool):
            raise DriverError(f"Harness reported a non-integer frame count: {value!r}")
        return value

    async def destroy(self) -> None:
        await self._page.evaluate(_DESTROY_HARNESS_JS, {"globalName": self._global_name})


@asynccontextmanager
async def open_browser_host(
    config: HeadlessRunnerConfig, *, viewport: Viewport = DEFAULT_VIEWPORT
) -> AsyncIterator[PlaywrightHarnessDriver]:
    """Launch Chromium, bootstrap the harness and yield a driver for it."""
    harness_source = config.read_harness_source()

    async with async_playwright() as playwright:
        LOGGER.info("Launching Chromium (headless=%s)", not config.show_browser)
        browser = await playwright.chromium.launch(
            headless=not config.show_browser,
            args=list(config.browser_args),
        )
        try:
            context = await browser.new_context(
                viewport={"width": viewport.width, "height": viewport.height},
                device_scale_factor=viewport.dpr,
            )
            context.set_default_timeout(config.browser_timeout_ms)
            page = await context.new_page()
            page.on("console", lambda message: LOGGER.debug("[page] %s", message.text))
            driver = await _bootstrap_harness(page, harness_source)
            try:
                yield driver
            finally:
                try:
                    await driver.destroy()
                except PlaywrightError as exc:
                    LOGGER.warning("Unable to destroy headless harness: %s", exc.message)
                await context.close()
        finally:
            await browser.close()


async def _bootstrap_harness(page: Page, harness_source: str) -> PlaywrightHarnessDriver:
    try:
        await page.set_content(build_canvas_document_html())
        await page.add_script_tag(content=harness_source, type="module")
        await page.wait_for_function(
            "(globalName) => typeof window[globalName] !== 'undefined'",
            arg=HARNESS_WINDOW_GLOBAL,
        )
    except PlaywrightError as exc:
        raise DriverError(f"Unable to load headless harness: {exc.message}") from exc
    driver = PlaywrightHarnessDriver(page)
    await driver.bootstrap(CANVAS_ID)
    LOGGER.debug("Headless harness bootstrapped on #%s", CANVAS_ID)
    return driver
