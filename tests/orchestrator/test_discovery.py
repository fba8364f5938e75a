"""Tests for corpus discovery: which folders become jobs, and in what order."""

from pathlib import Path

import pytest

from glare_engine.models import Category, Job
from glare_engine.orchestrator.discovery import discover_jobs, filter_jobs


def make_set(root: Path, category: str, name: str, files: list[str]) -> Path:
    folder = root / category / name
    folder.mkdir(parents=True)
    for f in files:
        (folder / f).write_bytes(b"jpeg")
    return folder


class TestDiscoverJobs:
    def test_includes_set_with_glare_image(self, tmp_path):
        """A folder with a glare image and no result is a job."""
        make_set(tmp_path, "without_reference", "001_Adams_John", ["glare_001.jpg"])

        jobs = discover_jobs(tmp_path)

        assert [j.job_id for j in jobs] == ["001_Adams_John"]
        assert jobs[0].category is Category.WITHOUT_REFERENCE
        assert jobs[0].glare_path.name == "glare_001.jpg"

    @pytest.mark.parametrize("category", ["with_reference", "without_reference"])
    def test_excludes_folder_without_glare_image(self, tmp_path, category):
        """Folders lacking a glare-prefixed file are never jobs, in either category."""
        make_set(tmp_path, category, "002_Baker_Ann", ["clear_002.jpg", "human_edited_002.jpg"])

        assert discover_jobs(tmp_path) == []

    def test_glare_must_be_jpg(self, tmp_path):
        make_set(tmp_path, "without_reference", "003_Cole_Tim", ["glare_003.png"])

        assert discover_jobs(tmp_path) == []

    def test_excludes_set_with_existing_result(self, tmp_path):
        """A result file marks the set as done; discovery skips it entirely."""
        make_set(tmp_path, "with_reference", "004_Dean_Sue", ["glare.jpg", "gemini_result.jpg"])
        make_set(tmp_path, "with_reference", "005_Ellis_Bo", ["glare.jpg"])

        jobs = discover_jobs(tmp_path)

        assert [j.job_id for j in jobs] == ["005_Ellis_Bo"]

    def test_order_is_category_then_id(self, tmp_path):
        """Ordering is deterministic and lexical, with_reference first."""
        make_set(tmp_path, "without_reference", "010_Z", ["glare.jpg"])
        make_set(tmp_path, "without_reference", "002_B", ["glare.jpg"])
        make_set(tmp_path, "with_reference", "009_Y", ["glare.jpg"])
        make_set(tmp_path, "with_reference", "001_A", ["glare.jpg"])

        jobs = discover_jobs(tmp_path)

        assert [(j.category.value, j.job_id) for j in jobs] == [
            ("with_reference", "001_A"),
            ("with_reference", "009_Y"),
            ("without_reference", "002_B"),
            ("without_reference", "010_Z"),
        ]

    def test_records_optional_images(self, tmp_path):
        make_set(
            tmp_path,
            "with_reference",
            "006_Fox_Al",
            ["glare_6.jpg", "clear_6.jpg", "human_edited_6.jpg"],
        )

        job = discover_jobs(tmp_path)[0]

        assert job.clear_path.name == "clear_6.jpg"
        assert job.human_edited_path.name == "human_edited_6.jpg"
        assert job.wants_reference is True

    def test_reference_set_without_clear_image_is_still_a_job(self, tmp_path):
        make_set(tmp_path, "with_reference", "007_Gray_Jo", ["glare.jpg"])

        job = discover_jobs(tmp_path)[0]

        assert job.clear_path is None
        assert job.wants_reference is True

    def test_missing_category_dir_is_skipped(self, tmp_path):
        make_set(tmp_path, "with_reference", "008_Hill_Ed", ["glare.jpg"])

        assert len(discover_jobs(tmp_path)) == 1

    def test_ignores_plain_files_at_category_level(self, tmp_path):
        (tmp_path / "without_reference").mkdir()
        (tmp_path / "without_reference" / "notes.txt").write_text("x")

        assert discover_jobs(tmp_path) == []

    def test_missing_corpus_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            discover_jobs(tmp_path / "nope")


class TestFilterJobs:
    def _jobs(self, tmp_path):
        for name in ("001_Adams_John", "002_Baker_Ann", "003_Adamson_Lu"):
            make_set(tmp_path, "without_reference", name, ["glare.jpg"])
        return discover_jobs(tmp_path)

    def test_substring_match(self, tmp_path):
        jobs = filter_jobs(self._jobs(tmp_path), "Adams")

        assert [j.job_id for j in jobs] == ["001_Adams_John", "003_Adamson_Lu"]

    def test_no_filter_keeps_all(self, tmp_path):
        assert len(filter_jobs(self._jobs(tmp_path), None)) == 3


class TestJob:
    def test_display_name_from_folder(self, tmp_path):
        job = Job("001_Adams_John", Category.WITH_REFERENCE, tmp_path, tmp_path / "glare.jpg")

        assert job.display_name == "Adams, John"

    def test_display_name_falls_back_to_id(self, tmp_path):
        job = Job("misc", Category.WITH_REFERENCE, tmp_path, tmp_path / "glare.jpg")

        assert job.display_name == "misc"

    def test_completion_follows_output_file(self, tmp_path):
        job = Job("x", Category.WITHOUT_REFERENCE, tmp_path, tmp_path / "glare.jpg")
        assert job.output_path == tmp_path / "gemini_result.jpg"
        assert job.is_complete is False

        job.output_path.write_bytes(b"done")

        assert job.is_complete is True

    def test_any_result_name_counts_as_complete(self, tmp_path):
        """The job and discovery agree on what 'done' means."""
        folder = make_set(tmp_path, "with_reference", "009_Ives_Al", ["glare.jpg"])
        job = discover_jobs(tmp_path)[0]

        (folder / "Gemini_Result_v2.png").write_bytes(b"done")

        assert job.is_complete is True
        assert discover_jobs(tmp_path) == []
