import os
from pathlib import Path

import pytest

from conftest import make_image
from webpify.errors import EnvironmentCheckError
from webpify.plan import build_output_path, plan_conversions
from webpify.scan import scan_images


class TestScanImages:
    """Tests for the recursive image scanner."""

    def test_finds_supported_files_recursively(self, input_dir):
        """Test every supported extension is found, at any depth."""
        for name in ["a.jpg", "b.jpeg", "c.png", "sub/d.gif", "sub/deeper/e.bmp", "f.tiff", "g.tif"]:
            (input_dir / name).parent.mkdir(parents=True, exist_ok=True)
            (input_dir / name).write_bytes(b"x")

        found = scan_images(input_dir)
        assert len(found) == 7
        assert all(p.is_absolute() for p in found)

    def test_extension_match_is_case_insensitive(self, input_dir):
        """Test PHOTO.JPG and Logo.Png are picked up."""
        (input_dir / "PHOTO.JPG").write_bytes(b"x")
        (input_dir / "Logo.Png").write_bytes(b"x")
        assert {p.name for p in scan_images(input_dir)} == {"PHOTO.JPG", "Logo.Png"}

    def test_ignores_unsupported_and_directories(self, input_dir):
        """Test .webp, .txt and directories named like images are skipped."""
        (input_dir / "done.webp").write_bytes(b"x")
        (input_dir / "notes.txt").write_bytes(b"x")
        (input_dir / "folder.jpg").mkdir()
        assert scan_images(input_dir) == []

    def test_order_is_stable(self, input_dir):
        """Test two scans of the same tree return the same sorted order."""
        for name in ["z.png", "a.png", "m/b.png", "c.png"]:
            (input_dir / name).parent.mkdir(parents=True, exist_ok=True)
            (input_dir / name).write_bytes(b"x")
        first = scan_images(input_dir)
        assert first == scan_images(input_dir)
        assert [p.name for p in first][:3] == ["a.png", "c.png", "z.png"]

    def test_missing_root_raises(self, tmp_path):
        """Test a nonexistent input root is an environment error."""
        with pytest.raises(EnvironmentCheckError):
            scan_images(tmp_path / "nope")

    def test_file_root_raises(self, tmp_path):
        """Test a regular file as input root is an environment error."""
        f = tmp_path / "file.jpg"
        f.write_bytes(b"x")
        with pytest.raises(EnvironmentCheckError):
            scan_images(f)

    @pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs non-root POSIX permissions")
    def test_unreadable_subtree_is_skipped(self, input_dir):
        """Test one unreadable directory does not abort the scan."""
        (input_dir / "ok.png").write_bytes(b"x")
        locked = input_dir / "locked"
        locked.mkdir()
        (locked / "hidden.png").write_bytes(b"x")
        locked.chmod(0)
        try:
            assert [p.name for p in scan_images(input_dir)] == ["ok.png"]
        finally:
            locked.chmod(0o755)


class TestBuildOutputPath:
    """Tests for build_output_path."""

    def test_mirrors_relative_path(self, tmp_path):
        """Test nested paths keep their structure and get a .webp suffix."""
        out = build_output_path(tmp_path / "in" / "a" / "b" / "cat.JPG", tmp_path / "in", tmp_path / "out")
        assert out == tmp_path / "out" / "a" / "b" / "cat.webp"

    def test_only_last_suffix_replaced(self, tmp_path):
        """Test my.photo.png -> my.photo.webp."""
        out = build_output_path(tmp_path / "in" / "my.photo.png", tmp_path / "in", tmp_path / "out")
        assert out.name == "my.photo.webp"


class TestPlanConversions:
    """Tests for plan_conversions."""

    def test_one_task_per_image(self, input_dir, output_dir):
        """Test every scanned image becomes exactly one task."""
        make_image(input_dir / "a.png")
        make_image(input_dir / "sub" / "b.jpg")
        plan = plan_conversions(scan_images(input_dir), input_dir, output_dir)
        assert plan.total_found == 2
        assert plan.skipped == 0
        assert sorted(t.out_path.name for t in plan.tasks) == ["a.webp", "b.webp"]
        assert plan.tasks[1].out_path.parent == output_dir.absolute() / "sub"

    def test_existing_output_is_skipped(self, input_dir, output_dir):
        """Test an existing .webp removes the input from the work list."""
        make_image(input_dir / "a.png")
        make_image(input_dir / "b.png")
        output_dir.mkdir()
        (output_dir / "a.webp").write_bytes(b"old")

        plan = plan_conversions(scan_images(input_dir), input_dir, output_dir)
        assert plan.skipped == 1
        assert [t.src_path.name for t in plan.tasks] == ["b.png"]

    def test_planning_creates_no_directories(self, input_dir, output_dir):
        """Test output directories are not created at plan time."""
        make_image(input_dir / "x" / "y" / "a.png")
        plan_conversions(scan_images(input_dir), input_dir, output_dir)
        assert not output_dir.exists()

    def test_changed_content_is_not_detected(self, input_dir, output_dir):
        """Test the skip keys only on output existence, not on content."""
        src = make_image(input_dir / "a.png")
        output_dir.mkdir()
        (output_dir / "a.webp").write_bytes(b"old")
        make_image(src, size=(10, 10))

        plan = plan_conversions(scan_images(input_dir), input_dir, output_dir)
        assert plan.tasks == []
        assert plan.skipped == 1
