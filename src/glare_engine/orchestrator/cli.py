#!/usr/bin/env python3
"""
Glare Orchestrator - runs locally and feeds unprocessed image sets through the
gemini-glare sprite.

For each unprocessed image set:
  1. Restores the sprite from its logged-in checkpoint
  2. Ensures Xvfb, kills the old Chrome, clears scratch dirs
  3. Uploads the image(s) and runs the driver inside the sprite
  4. Captures the base64-encoded result from stdout
  5. Saves gemini_result.jpg next to the inputs

Usage:
    glare-orchestrator                        # process all unprocessed
    glare-orchestrator --dry-run              # list what would be processed
    glare-orchestrator --set 001_Adams        # only sets whose id contains the text

Environment Variables:
    GLARE_CORPUS_DIR        - corpus root (with_reference/, without_reference/)
    GLARE_SPRITE_NAME       - sprite to drive (default: gemini-glare)
    GLARE_CHECKPOINT_ID     - checkpoint to restore before each job (default: v3)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .. import config
from ..models import RunSummary
from ..remote.sprite import SpriteEnvironment
from .discovery import discover_jobs, filter_jobs
from .sequencer import Sequencer

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: str | None = None, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("glare_engine")
    logger.setLevel(level)
    # main() may run more than once per process (tests)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    logger.addHandler(ch)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        logger.addHandler(fh)

    return logger


def write_report(path: Path, summary: RunSummary) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(summary.to_json_dict(), ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="glare-orchestrator",
        description="Remove glasses glare from corpus image sets via a Gemini sprite",
    )
    parser.add_argument("--dry-run", action="store_true", help="List sets and exit")
    parser.add_argument("--set", dest="only", help="Only process sets whose id contains this")
    parser.add_argument("--corpus", default=str(config.CORPUS_DIR), help="Corpus root directory")
    parser.add_argument("--sprite", default=config.SPRITE_NAME, help="Sprite name")
    parser.add_argument(
        "--checkpoint", default=config.CHECKPOINT_ID, help="Checkpoint restored before each job"
    )
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    parser.add_argument("--report", default=None, help="Write a JSON run summary here")
    args = parser.parse_args(argv)

    logger = setup_logging(log_file=args.log_file)
    logger.info("Sprite Gemini Orchestrator")
    logger.info("=" * 60)

    try:
        jobs = filter_jobs(discover_jobs(Path(args.corpus)), args.only)
    except Exception as e:
        logger.error(f"❌ Discovery failed: {e}", exc_info=True)
        return 1

    if args.only and not jobs:
        logger.info(f'No unprocessed set matching "{args.only}" found.')
        return 0

    logger.info(f"Found {len(jobs)} unprocessed image set(s):")
    for job in jobs:
        logger.info(f"  - {job.category.value}/{job.job_id}")

    if args.dry_run:
        logger.info("(dry run - not processing)")
        return 0

    if not jobs:
        logger.info("Nothing to process!")
        return 0

    environment = SpriteEnvironment(name=args.sprite, checkpoint_id=args.checkpoint)
    summary = Sequencer(environment, checkpoint_id=args.checkpoint).run(jobs)

    if args.report:
        write_report(Path(args.report), summary)
        logger.info(f"Report written to {args.report}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
