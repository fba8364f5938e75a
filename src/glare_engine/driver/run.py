"""
Remote-side driver CLI. Runs INSIDE the sprite to process one image.

Expects:
    /tmp/input/glare.jpg        (required)
    /tmp/input/clear.jpg        (optional, reference image)

Produces:
    /tmp/output/gemini_result.jpg

The final image is also written to stdout as one "BASE64_RESULT:<b64>" line so
the orchestrator can capture it without a file download. Logs go to stderr.

Usage:
    DISPLAY=:99 python -m glare_engine.driver [--with-reference]
"""

from __future__ import annotations

import argparse
import base64
import logging
import sys
from pathlib import Path
from typing import TextIO

from playwright.sync_api import BrowserContext, Playwright, sync_playwright

from .. import config
from ..models import RESULT_FILENAME
from .session import GeminiImageSession, resolve_inputs
from .timing import Deadline, alarm_budget

logger = logging.getLogger(__name__)


def launch_context(playwright: Playwright) -> BrowserContext:
    # The checkpoint carries a logged-in profile; persistent context reuses it
    return playwright.chromium.launch_persistent_context(
        str(config.PROFILE_DIR),
        executable_path=config.CHROME_PATH,
        headless=False,
        args=list(config.BROWSER_ARGS),
    )


def emit_result(data: bytes, stream: TextIO) -> None:
    stream.write(f"\n{config.RESULT_LINE_PREFIX}{base64.b64encode(data).decode('ascii')}\n")
    stream.write("SUCCESS\n")
    stream.flush()


def run_driver(
    with_reference: bool,
    input_dir: Path = config.INPUT_DIR,
    output_dir: Path = config.OUTPUT_DIR,
    budget_s: int = config.PROCESS_TIMEOUT_S,
    stream: TextIO | None = None,
) -> int:
    """Returns 0 on success, 1 on any FAILED termination."""
    stream = stream or sys.stdout
    deadline = Deadline(budget_s)
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        inputs = resolve_inputs(input_dir, with_reference)
        with alarm_budget(budget_s):
            with sync_playwright() as p:
                context = launch_context(p)
                page = None
                try:
                    page = context.new_page()
                    session = GeminiImageSession(
                        page, inputs, output_dir / RESULT_FILENAME, deadline
                    )
                    data = session.run()
                finally:
                    for closable in (page, context):
                        if closable is None:
                            continue
                        try:
                            closable.close()
                        except Exception as e:
                            logger.debug(f"[Browser] Close failed: {e}")
    except Exception as e:
        logger.error(f"❌ [Driver] FAILED after {deadline.elapsed_s:.1f}s: {e}")
        print(f"FAILED: {e}", file=sys.stderr)
        return 1

    emit_result(data, stream)
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        prog="glare-driver",
        description="Remove glasses glare from /tmp/input/glare.jpg via Gemini web",
    )
    parser.add_argument(
        "--with-reference",
        action="store_true",
        help="Upload /tmp/input/clear.jpg as a reference image (if present)",
    )
    args = parser.parse_args(argv)

    return run_driver(with_reference=args.with_reference)


if __name__ == "__main__":
    raise SystemExit(main())
