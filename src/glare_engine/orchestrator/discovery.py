"""
Job discovery over the image-set corpus.

Layout:
    <corpus>/with_reference/<job_id>/glare*.jpg, clear*.jpg, human_edited*, gemini_result.jpg
    <corpus>/without_reference/<job_id>/...

A directory is a job iff it has a glare image and no result yet.
"""

import logging
from pathlib import Path

from .. import config
from ..models import Category, Job

logger = logging.getLogger(__name__)


def _find_prefixed(files: list[Path], prefix: str, suffix: str | None = None) -> Path | None:
    for f in files:
        name = f.name.lower()
        if not name.startswith(prefix):
            continue
        if suffix and not name.endswith(suffix):
            continue
        return f
    return None


def build_job(folder: Path, category: Category) -> Job | None:
    """Classify one corpus folder. None if it has no glare image."""
    files = sorted(p for p in folder.iterdir() if p.is_file())
    glare = _find_prefixed(files, config.GLARE_PREFIX, ".jpg")
    if glare is None:
        return None
    return Job(
        job_id=folder.name,
        category=category,
        folder=folder,
        glare_path=glare,
        clear_path=_find_prefixed(files, config.CLEAR_PREFIX, ".jpg"),
        human_edited_path=_find_prefixed(files, config.HUMAN_EDITED_PREFIX),
    )


def discover_jobs(corpus_dir: Path = config.CORPUS_DIR) -> list[Job]:
    """Unprocessed jobs in deterministic (category, job_id) order."""
    if not corpus_dir.is_dir():
        raise FileNotFoundError(f"Corpus directory not found: {corpus_dir}")

    jobs: list[Job] = []
    for category in Category:
        cat_dir = corpus_dir / category.value
        if not cat_dir.is_dir():
            logger.debug(f"[Discovery] No {category.value}/ in {corpus_dir}, skipping")
            continue

        for folder in sorted(p for p in cat_dir.iterdir() if p.is_dir()):
            job = build_job(folder, category)
            if job is None:
                logger.debug(f"[Discovery] {category.value}/{folder.name}: no glare image")
                continue
            if job.is_complete:
                continue
            jobs.append(job)

    return sorted(jobs, key=lambda j: j.sort_key)


def filter_jobs(jobs: list[Job], substring: str | None) -> list[Job]:
    if not substring:
        return list(jobs)
    return [j for j in jobs if substring in j.job_id]
