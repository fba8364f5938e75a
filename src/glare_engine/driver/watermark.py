"""Best-effort call to the external watermark remover."""

import logging
import re
import subprocess
from pathlib import Path

from .. import config

logger = logging.getLogger(__name__)

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def remove_watermark(
    image_path: Path,
    tool: str = config.WATERMARK_TOOL,
    timeout: int = config.WATERMARK_TIMEOUT_S,
) -> bool:
    """
    Rewrite image_path in place without the visible Gemini watermark.

    The tool no-ops when it detects no watermark. Failures are logged and
    swallowed: an uncleaned result is still a valid result.
    """
    cmd = [tool, "-i", str(image_path), "-o", str(image_path), "-v"]
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.info(f"[Watermark] Removal skipped ({type(e).__name__}: {e})")
        return False

    output = _ANSI_RE.sub("", result.stdout or "").strip()
    if output:
        logger.info(f"[Watermark] {output}")
    if result.returncode != 0:
        logger.info(f"[Watermark] Removal skipped (exit {result.returncode})")
        return False
    return True
