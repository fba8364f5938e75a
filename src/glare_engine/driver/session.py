"""
Gemini image-edit session.

Runs inside the sprite. Drives one Playwright page through the fixed
interaction protocol:

    IDLE -> NAVIGATING -> UPLOADING -> PROMPTING -> SUBMITTING
         -> AWAITING_RESPONSE -> EXTRACTING -> SUCCEEDED | FAILED

Every transition checks the run's Deadline, so an exhausted budget pre-empts
whatever step comes next.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .. import config
from ..models import ExtractionError, GlareError, InteractionError
from .extraction import ExtractionChain
from .prompts import select_prompt
from .timing import Deadline
from .watermark import remove_watermark

logger = logging.getLogger(__name__)

# Response polling
POLL_INTERVAL_MS = 5_000
RESPONSE_CEILING_MS = 90_000
SETTLE_DELAY_MS = 3_000
PRE_POLL_DELAY_MS = 5_000

CREATE_IMAGE_SELECTOR = "button:has-text('Create image'), button[aria-label*='Create image']"
UPLOAD_MENU_SELECTOR = (
    "button[aria-label='Open upload file menu'], "
    "button[aria-label*='upload'], "
    "button[aria-label*='Add']"
)
UPLOAD_FILE_OPTION_SELECTOR = (
    "button:has-text('Upload file'), [role='menuitem']:has-text('Upload')"
)
FILE_INPUT_SELECTORS = [
    "input[type='file'][accept*='image']",
    "input[type='file']",
]
PROMPT_INPUT_SELECTOR = "[aria-label='Enter a prompt here'], [contenteditable='true'], textarea"
SEND_SELECTOR = "button[aria-label='Send message']"
GENERATING_SELECTOR = (
    "[aria-label*='Stop'], .loading-indicator, [class*='loading'], [class*='generating']"
)
RESPONSE_IMAGE_SELECTOR = (
    ".model-response-text img, .response-container img, [data-message-author-role='model'] img"
)
READY_INPUT_SELECTOR = (
    "[aria-label='Enter a prompt here'], [placeholder*='prompt'], [contenteditable='true']"
)


class SessionState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    UPLOADING = "uploading"
    PROMPTING = "prompting"
    SUBMITTING = "submitting"
    AWAITING_RESPONSE = "awaiting_response"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = {SessionState.SUCCEEDED, SessionState.FAILED}


@dataclass(frozen=True)
class DriverInputs:
    glare_path: Path
    clear_path: Path | None = None

    @property
    def with_reference(self) -> bool:
        return self.clear_path is not None

    @property
    def image_paths(self) -> list[Path]:
        # Order matters: the prompt calls the glare image "the first image"
        if self.clear_path is not None:
            return [self.glare_path, self.clear_path]
        return [self.glare_path]

    @property
    def prompt(self) -> str:
        return select_prompt(self.with_reference)


def resolve_inputs(input_dir: Path, want_reference: bool) -> DriverInputs:
    """
    Check the scratch input dir. Reference mode without a reference file
    degrades to the no-reference prompt instead of failing.
    """
    glare_path = input_dir / config.REMOTE_GLARE_NAME
    if not glare_path.exists():
        raise GlareError("input", f"{glare_path} not found")

    if not want_reference:
        logger.info("[Input] Mode: without reference image")
        return DriverInputs(glare_path)

    clear_path = input_dir / config.REMOTE_CLEAR_NAME
    if clear_path.exists():
        logger.info("[Input] Mode: with reference image")
        return DriverInputs(glare_path, clear_path)

    logger.info("[Input] Reference image not found, proceeding without")
    return DriverInputs(glare_path)


@dataclass(frozen=True)
class PageSnapshot:
    generating: bool
    image_count: int
    response_images: int
    input_ready: bool


def is_settled(snapshot: PageSnapshot, baseline_images: int) -> bool:
    """Generation finished, an image arrived, and the composer is usable again."""
    new_images = snapshot.image_count - baseline_images
    has_image = new_images > 0 or snapshot.response_images > 0
    return not snapshot.generating and has_image and snapshot.input_ready


def _visible_within(locator: Locator, timeout_ms: int) -> bool:
    try:
        locator.wait_for(state="visible", timeout=timeout_ms)
        return True
    except PlaywrightTimeoutError:
        return False


class GeminiImageSession:
    """One pass of the interaction protocol against an already-open page."""

    def __init__(
        self,
        page: Page,
        inputs: DriverInputs,
        output_path: Path,
        deadline: Deadline,
        chain: ExtractionChain | None = None,
        app_url: str = config.APP_URL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.page = page
        self.inputs = inputs
        self.output_path = output_path
        self.deadline = deadline
        self.chain = chain or ExtractionChain()
        self.app_url = app_url
        self._clock = clock
        self.state = SessionState.IDLE
        self.error: Exception | None = None
        self._prompt_area: Locator | None = None

    def _enter(self, state: SessionState) -> None:
        if state not in TERMINAL_STATES:
            self.deadline.check(state.value)
        logger.info(f"[Session] {self.state.value} -> {state.value}")
        self.state = state

    def run(self) -> bytes:
        """Run the protocol and return the final (watermark-cleaned) image bytes."""
        try:
            self._enter(SessionState.NAVIGATING)
            self.navigate()
            self._enter(SessionState.UPLOADING)
            self.upload()
            self._enter(SessionState.PROMPTING)
            self.enter_prompt()
            self._enter(SessionState.SUBMITTING)
            self.submit()
            self._enter(SessionState.AWAITING_RESPONSE)
            self.await_response()
            self._enter(SessionState.EXTRACTING)
            data = self.extract()
            self._enter(SessionState.SUCCEEDED)
            return self.deliver(data)
        except Exception as e:
            self.error = e
            self._enter(SessionState.FAILED)
            raise

    # ---- States ----

    def navigate(self) -> None:
        logger.info("[Navigate] Opening Gemini...")
        self.page.goto(
            self.app_url,
            wait_until="domcontentloaded",
            timeout=self.deadline.remaining_ms(60_000),
        )
        self.page.wait_for_timeout(3000)

        create_btn = self.page.locator(CREATE_IMAGE_SELECTOR).first
        if _visible_within(create_btn, 5000):
            create_btn.click()
            self.page.wait_for_timeout(2000)
            logger.info("[Navigate] Clicked Create image")

    def upload(self) -> None:
        paths = [str(p) for p in self.inputs.image_paths]
        logger.info(f"[Upload] Uploading {len(paths)} image(s)...")

        upload_btn = self.page.locator(UPLOAD_MENU_SELECTOR).first
        if _visible_within(upload_btn, 3000):
            upload_btn.click()
            self.page.wait_for_timeout(500)

            option = self.page.locator(UPLOAD_FILE_OPTION_SELECTOR).first
            if _visible_within(option, 2000):
                with self.page.expect_file_chooser(timeout=10_000) as fc_info:
                    option.click()
                fc_info.value.set_files(paths)
                logger.info(f"[Upload] Uploaded {len(paths)} file(s)")
                self.page.wait_for_timeout(3000)
                return
            logger.warning("[Upload] 'Upload file' option not visible")
        else:
            logger.warning("[Upload] Upload menu button not visible")

        self._set_input_files(paths)

    def _set_input_files(self, paths: list[str]) -> None:
        """Fallback: attach files straight to a (possibly hidden) file input."""
        last_err: Exception | None = None
        for sel in FILE_INPUT_SELECTORS:
            try:
                locator = self.page.locator(sel).first
                locator.wait_for(state="attached", timeout=2000)
                locator.set_input_files(paths, timeout=30_000)
                logger.info(f"[Upload] Files set directly on: {sel}")
                self.page.wait_for_timeout(3000)
                return
            except PlaywrightError as exc:
                last_err = exc
                continue
        logger.warning(f"[Upload] No file input accepted the images. Last error: {last_err}")

    def enter_prompt(self) -> None:
        area = self.page.locator(PROMPT_INPUT_SELECTOR).first
        if not _visible_within(area, 5000):
            raise InteractionError("Input area not found")

        area.click()
        self.page.wait_for_timeout(300)
        area.press_sequentially(self.inputs.prompt, delay=10)
        self.page.wait_for_timeout(500)
        self._prompt_area = area
        logger.info("[Prompt] Entered prompt")

    def submit(self) -> None:
        send_btn = self.page.locator(SEND_SELECTOR).first
        try:
            send_btn.wait_for(state="visible", timeout=5000)
            send_btn.click()
            logger.info("[Submit] Submitted")
        except PlaywrightError:
            if self._prompt_area is None:
                raise InteractionError("Send button not found and no prompt area to submit from")
            self._prompt_area.press("Enter")
            logger.info("[Submit] Submitted via Enter")
        self.page.wait_for_timeout(2000)

    def snapshot(self) -> PageSnapshot:
        page = self.page
        try:
            input_ready = page.locator(READY_INPUT_SELECTOR).first.is_visible()
        except PlaywrightError:
            input_ready = False
        return PageSnapshot(
            generating=page.locator(GENERATING_SELECTOR).count() > 0,
            image_count=page.locator("img").count(),
            response_images=page.locator(RESPONSE_IMAGE_SELECTOR).count(),
            input_ready=input_ready,
        )

    def await_response(self) -> bool:
        """
        Poll until is_settled() or the ceiling. Returns False on ceiling; the
        caller extracts anyway and lets the size guard decide.
        """
        baseline = self.page.locator("img").count()
        self.page.wait_for_timeout(PRE_POLL_DELAY_MS)
        logger.info(f"⏳ [Collect] Waiting for response (baseline images={baseline})...")

        start = self._clock()
        while (self._clock() - start) * 1000 < RESPONSE_CEILING_MS:
            self.deadline.check("awaiting response")
            snap = self.snapshot()
            if is_settled(snap, baseline):
                elapsed = self._clock() - start
                logger.info(f"✅ [Collect] Response complete after {elapsed:.1f}s")
                self.page.wait_for_timeout(SETTLE_DELAY_MS)
                return True

            logger.info(
                f"[Collect] Waiting... images: {snap.image_count} "
                f"({snap.image_count - baseline} new), generating: {snap.generating}"
            )
            self.page.wait_for_timeout(self.deadline.remaining_ms(POLL_INTERVAL_MS))

        logger.warning(
            f"⚠️ [Collect] No settled response after {RESPONSE_CEILING_MS // 1000}s, "
            "extracting anyway"
        )
        return False

    def extract(self) -> bytes:
        attempt = self.chain.run(self.page, self.deadline)
        if attempt is None:
            raise ExtractionError(
                "Could not download generated image",
                {"attempts": len(self.chain.attempts)},
            )
        return attempt.data

    def deliver(self, data: bytes) -> bytes:
        """Write to the scratch output, strip the watermark, return final bytes."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_bytes(data)
        logger.info(f"[Output] Wrote {self.output_path} ({len(data) // 1024}KB)")

        logger.info("[Watermark] Removing Gemini watermark...")
        remove_watermark(self.output_path)
        return self.output_path.read_bytes()
