"""
Glare Engine - Configuration Module
Centralized configuration from environment variables.

The same module is imported on both sides of the exec bridge: the orchestrator
(local) reads the sprite/corpus settings, the driver (inside the sprite) reads
the browser/scratch-path settings.
"""

import os
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return max(1, int(value))
    except ValueError:
        return default


# Paths
BASE_DIR = Path(__file__).parents[2]
CORPUS_DIR = Path(_env_str("GLARE_CORPUS_DIR", str(BASE_DIR / "raw_examples" / "test_set")))

# Corpus layout
GLARE_PREFIX = "glare"
CLEAR_PREFIX = "clear"
HUMAN_EDITED_PREFIX = "human_edited"
RESULT_PREFIX = "gemini_result"

# Sprite (remote environment)
SPRITE_BIN = _env_str("GLARE_SPRITE_BIN", "sprite")
SPRITE_NAME = _env_str("GLARE_SPRITE_NAME", "gemini-glare")
CHECKPOINT_ID = _env_str("GLARE_CHECKPOINT_ID", "v3")
REMOTE_APP_DIR = _env_str("GLARE_REMOTE_APP_DIR", "/app")
REMOTE_PYTHON = _env_str("GLARE_REMOTE_PYTHON", "python3")
DISPLAY = _env_str("GLARE_DISPLAY", ":99")
XVFB_SCREEN = _env_str("GLARE_XVFB_SCREEN", "1280x1024x24")

# Scratch directories inside the sprite
INPUT_DIR = Path(_env_str("GLARE_INPUT_DIR", "/tmp/input"))
OUTPUT_DIR = Path(_env_str("GLARE_OUTPUT_DIR", "/tmp/output"))
REMOTE_GLARE_NAME = "glare.jpg"
REMOTE_CLEAR_NAME = "clear.jpg"

# Exec bridge limits (seconds / bytes)
EXEC_TIMEOUT_S = _env_int("GLARE_EXEC_TIMEOUT_S", 300)
RESTORE_TIMEOUT_S = _env_int("GLARE_RESTORE_TIMEOUT_S", 60)
RESTORE_SETTLE_S = _env_int("GLARE_RESTORE_SETTLE_S", 3)
REMOTE_RUN_TIMEOUT_S = _env_int("GLARE_REMOTE_RUN_TIMEOUT_S", 240)
# Checked once the call returns; larger output is truncated and reported as failed
MAX_OUTPUT_BYTES = _env_int("GLARE_MAX_OUTPUT_BYTES", 50 * 1024 * 1024)

# Payload
RESULT_LINE_PREFIX = "BASE64_RESULT:"
MIN_RESULT_BYTES = 30_000

# Browser (inside the sprite)
APP_URL = _env_str("GLARE_APP_URL", "https://gemini.google.com/app")
CHROME_PATH = _env_str(
    "GLARE_CHROME_PATH",
    "/home/sprite/.cache/ms-playwright/chromium-1208/chrome-linux64/chrome",
)
PROFILE_DIR = Path(_env_str("GLARE_PROFILE_DIR", "/home/sprite/chrome-profile"))
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-features=VizDisplayCompositor",
    "--window-size=1280,1024",
]

# Driver wall-clock budget; must stay below REMOTE_RUN_TIMEOUT_S
PROCESS_TIMEOUT_S = _env_int("GLARE_PROCESS_TIMEOUT_S", 180)

# Watermark post-processor
WATERMARK_TOOL = _env_str("GLARE_WATERMARK_TOOL", "GeminiWatermarkTool")
WATERMARK_TIMEOUT_S = _env_int("GLARE_WATERMARK_TIMEOUT_S", 15)
