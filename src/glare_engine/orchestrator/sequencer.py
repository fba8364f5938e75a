"""
Sequential job runner.

Jobs share one sprite, so they run strictly one after another, each starting
from a fresh checkpoint restore. A failed job is recorded and the run moves on;
the next restore wipes whatever state the failure left behind.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import time

from PIL import Image

from .. import config
from ..models import (
    ExtractionError,
    GlareError,
    Job,
    JobOutcome,
    RemoteEnvironmentError,
    ResultPayload,
    RunSummary,
    is_acceptable,
)
from ..remote.sprite import SpriteEnvironment

logger = logging.getLogger(__name__)


def parse_payload(output: str, prefix: str = config.RESULT_LINE_PREFIX) -> bytes | None:
    """Decode the prefixed base64 line from driver output; everything else is log noise."""
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith(prefix):
            continue
        try:
            return base64.b64decode(line[len(prefix) :], validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"  [Payload] Corrupt base64 result: {e}")
            return None
    return None


def echo_remote_output(output: str, prefix: str = config.RESULT_LINE_PREFIX) -> None:
    logger.info("  --- Script output ---")
    for line in output.splitlines():
        if line.startswith(prefix):
            logger.info("  [base64 data captured]")
        else:
            logger.info(f"  {line}")


def describe_image(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return f"{img.width}x{img.height} {img.format}"
    except OSError:
        return "unrecognized image"


class Sequencer:
    """Drives jobs through the sprite one at a time."""

    def __init__(
        self,
        environment: SpriteEnvironment,
        checkpoint_id: str | None = None,
        min_result_bytes: int = config.MIN_RESULT_BYTES,
    ):
        self.env = environment
        self.checkpoint_id = checkpoint_id
        self.min_result_bytes = min_result_bytes

    def run(self, jobs: list[Job]) -> RunSummary:
        summary = RunSummary()
        for job in jobs:
            summary.outcomes.append(self.process_job(job))

        logger.info("=" * 60)
        logger.info(
            f"Done! {summary.succeeded} succeeded, {summary.failed} failed "
            f"out of {summary.total} total."
        )
        return summary

    def process_job(self, job: Job) -> JobOutcome:
        """Run one job to a terminal state. Never raises."""
        logger.info("=" * 60)
        logger.info(f"Processing: {job.job_id} ({job.category.value}) - {job.display_name}")
        logger.info("=" * 60)

        start = time.monotonic()
        try:
            payload = self._run_remote(job)
            job.output_path.write_bytes(payload.data)
        except GlareError as e:
            logger.error(f"  FAILED: {e}")
            return self._outcome(job, start, error=str(e))
        except Exception as e:
            logger.error(f"  FAILED: unexpected {type(e).__name__}: {e}", exc_info=True)
            return self._outcome(job, start, error=f"{type(e).__name__}: {e}")

        logger.info(
            f"  SUCCESS: Saved {job.output_path} "
            f"({payload.size // 1024}KB, {describe_image(payload.data)})"
        )
        return self._outcome(job, start, result_bytes=payload.size)

    def _outcome(
        self, job: Job, start: float, error: str | None = None, result_bytes: int = 0
    ) -> JobOutcome:
        return JobOutcome(
            job_id=job.job_id,
            category=job.category,
            ok=error is None,
            error=error,
            elapsed_s=time.monotonic() - start,
            result_bytes=result_bytes,
        )

    def _run_remote(self, job: Job) -> ResultPayload:
        if not self.env.restore(self.checkpoint_id):
            raise RemoteEnvironmentError("Checkpoint restore failed")

        if not self.env.prepare():
            raise RemoteEnvironmentError("Sprite prepare failed")

        logger.info(f"  Uploading {job.glare_path.name}...")
        if not self.env.upload_file(job.glare_path, config.REMOTE_GLARE_NAME):
            raise RemoteEnvironmentError(f"Upload of {job.glare_path.name} failed")

        if job.wants_reference:
            if job.clear_path is not None:
                logger.info(f"  Uploading {job.clear_path.name}...")
                if not self.env.upload_file(job.clear_path, config.REMOTE_CLEAR_NAME):
                    raise RemoteEnvironmentError(f"Upload of {job.clear_path.name} failed")
            else:
                logger.info("  No reference image in set, driver will run without one")

        logger.info("  Running Gemini processing...")
        result = self.env.run_driver(job.wants_reference)
        echo_remote_output(result.stdout)
        if result.truncated:
            raise RemoteEnvironmentError(f"Driver output incomplete ({result.error})")

        data = parse_payload(result.stdout)
        if data is None:
            reason = f" ({result.error})" if result.error else ""
            raise ExtractionError(f"No base64 result in output{reason}")
        if not is_acceptable(data, self.min_result_bytes):
            raise ExtractionError(f"Result too small ({len(data)} bytes)")
        return ResultPayload(job_id=job.job_id, data=data)
