"""
Extraction strategy chain for generated images.

Gemini's UI is not built for automation and no single way of getting the
produced image out of it works every time. The chain tries an ordered list of
strategies against the large images on the page (most recent first) and keeps
the first buffer that passes the size guard.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from playwright.sync_api import Download, Locator, Page
from playwright.sync_api import Error as PlaywrightError

from .. import config
from ..models import DriverTimeoutError, ExtractionAttempt, is_acceptable
from .timing import Deadline

logger = logging.getLogger(__name__)

# Icons, avatars and thumbnails are smaller than this (CSS px, both sides)
MIN_CANDIDATE_PX = 150

HOVER_DOWNLOAD_SELECTOR = (
    "button[aria-label*='ownload'], button[data-tooltip*='ownload'], [aria-label*='ownload']"
)
PAGE_DOWNLOAD_SELECTOR = (
    "button[aria-label*='Download'], button[aria-label*='download'], button:has-text('Download')"
)

_FETCH_SOURCE_JS = """async (index) => {
    const img = document.querySelectorAll('img')[index];
    if (!img || img.naturalWidth < 150) return null;
    const src = img.src;
    if (!src || src.startsWith('data:')) return null;
    try {
        const response = await fetch(src, {credentials: 'include'});
        if (!response.ok) return null;
        const blob = await response.blob();
        return await new Promise((resolve) => {
            const reader = new FileReader();
            reader.onload = () => resolve(String(reader.result).split(',')[1] || null);
            reader.onerror = () => resolve(null);
            reader.readAsDataURL(blob);
        });
    } catch (e) {
        return null;
    }
}"""

_CANVAS_JS = """(index) => {
    const img = document.querySelectorAll('img')[index];
    if (!img || img.naturalWidth < 150) return null;
    const canvas = document.createElement('canvas');
    canvas.width = img.naturalWidth;
    canvas.height = img.naturalHeight;
    const ctx = canvas.getContext('2d');
    if (!ctx) return null;
    try {
        ctx.drawImage(img, 0, 0);
        return canvas.toDataURL('image/jpeg', 0.95).split(',')[1];
    } catch (e) {
        return null;
    }
}"""


@dataclass(frozen=True)
class ImageCandidate:
    index: int  # position in document.querySelectorAll('img')
    locator: Locator
    width: float
    height: float


def find_candidates(page: Page, min_px: int = MIN_CANDIDATE_PX) -> list[ImageCandidate]:
    """Large rendered images, most recent (last in DOM order) first."""
    images = page.locator("img")
    out: list[ImageCandidate] = []
    for i in range(images.count() - 1, -1, -1):
        img = images.nth(i)
        try:
            box = img.bounding_box()
        except Exception:
            box = None
        if not box or box["width"] < min_px or box["height"] < min_px:
            continue
        out.append(ImageCandidate(i, img, box["width"], box["height"]))
    return out


def _read_download(download: Download) -> bytes | None:
    path = download.path()
    if not path:
        return None
    return Path(path).read_bytes()


def _decode_b64(data: str | None) -> bytes | None:
    if not data:
        return None
    return base64.b64decode(data)


class ExtractionStrategy(ABC):
    name: str = "base"
    # False -> tried once per page, candidate is None
    per_candidate: bool = True

    @abstractmethod
    def attempt(self, page: Page, candidate: ImageCandidate | None) -> bytes | None:
        raise NotImplementedError


class HoverDownloadStrategy(ExtractionStrategy):
    """Hover the image to reveal its download control, click it, capture the file."""

    name = "hover_download"

    def __init__(self, download_timeout_ms: int = 15_000):
        self.download_timeout_ms = download_timeout_ms

    def attempt(self, page: Page, candidate: ImageCandidate | None) -> bytes | None:
        candidate.locator.hover()
        page.wait_for_timeout(1000)
        try:
            control = page.locator(HOVER_DOWNLOAD_SELECTOR)
            if control.count() == 0:
                return None
            with page.expect_download(timeout=self.download_timeout_ms) as dl_info:
                control.first.click()
            return _read_download(dl_info.value)
        finally:
            # Dismiss the hover overlay
            try:
                page.keyboard.press("Escape")
                page.wait_for_timeout(300)
            except PlaywrightError as e:
                logger.debug(f"[Extract] Overlay dismiss failed: {e}")


class DownloadButtonStrategy(ExtractionStrategy):
    name = "download_button"
    per_candidate = False

    def __init__(self, download_timeout_ms: int = 10_000):
        self.download_timeout_ms = download_timeout_ms

    def attempt(self, page: Page, candidate: ImageCandidate | None) -> bytes | None:
        control = page.locator(PAGE_DOWNLOAD_SELECTOR)
        if control.count() == 0:
            return None
        with page.expect_download(timeout=self.download_timeout_ms) as dl_info:
            control.first.click()
        return _read_download(dl_info.value)


class FetchSourceStrategy(ExtractionStrategy):
    """Re-fetch the image src inside the page so the session cookies apply."""

    name = "fetch_source"

    def attempt(self, page: Page, candidate: ImageCandidate | None) -> bytes | None:
        return _decode_b64(page.evaluate(_FETCH_SOURCE_JS, candidate.index))


class CanvasStrategy(ExtractionStrategy):
    # Re-encodes the pixels, so it comes last
    name = "canvas"

    def attempt(self, page: Page, candidate: ImageCandidate | None) -> bytes | None:
        return _decode_b64(page.evaluate(_CANVAS_JS, candidate.index))


def default_strategies() -> list[ExtractionStrategy]:
    return [
        HoverDownloadStrategy(),
        DownloadButtonStrategy(),
        FetchSourceStrategy(),
        CanvasStrategy(),
    ]


class ExtractionChain:
    """Ordered, first-success-wins list of extraction strategies."""

    def __init__(
        self,
        strategies: list[ExtractionStrategy] | None = None,
        min_bytes: int = config.MIN_RESULT_BYTES,
        min_candidate_px: int = MIN_CANDIDATE_PX,
    ):
        self.strategies = strategies if strategies is not None else default_strategies()
        self.min_bytes = min_bytes
        self.min_candidate_px = min_candidate_px
        self.attempts: list[ExtractionAttempt] = []

    def run(self, page: Page, deadline: Deadline | None = None) -> ExtractionAttempt | None:
        """Return the first accepted attempt, or None when every strategy fails."""
        self.attempts = []
        candidates = find_candidates(page, self.min_candidate_px)
        logger.info(f"[Extract] {len(candidates)} candidate image(s) >= {self.min_candidate_px}px")

        for strategy in self.strategies:
            targets: list[ImageCandidate | None] = (
                list(candidates) if strategy.per_candidate else [None]
            )
            for candidate in targets:
                if deadline is not None:
                    deadline.check(f"extraction ({strategy.name})")
                attempt = self._try(strategy, page, candidate)
                self.attempts.append(attempt)
                if attempt.ok:
                    logger.info(
                        f"✅ [Extract] Got image via {strategy.name} ({attempt.size // 1024}KB)"
                    )
                    return attempt
                logger.debug(f"[Extract] {strategy.name} miss: {attempt.error}")

        logger.warning(f"❌ [Extract] All strategies failed ({len(self.attempts)} attempts)")
        return None

    def _try(
        self, strategy: ExtractionStrategy, page: Page, candidate: ImageCandidate | None
    ) -> ExtractionAttempt:
        index = candidate.index if candidate is not None else None
        try:
            data = strategy.attempt(page, candidate)
        except DriverTimeoutError:
            raise
        except Exception as e:
            return ExtractionAttempt(strategy.name, index, ok=False, error=str(e))

        if not data:
            return ExtractionAttempt(strategy.name, index, ok=False, error="no data")
        if not is_acceptable(data, self.min_bytes):
            return ExtractionAttempt(
                strategy.name, index, ok=False, error=f"too small ({len(data)} bytes)"
            )
        return ExtractionAttempt(strategy.name, index, ok=True, data=data)
