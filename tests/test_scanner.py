"""Tests for scanning image folder trees."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from image_folder_classifier.dataset_builder import scan_image_folders
from image_folder_classifier.lib import ImageFormat


class TestScanImageFolders:
    """Tests for scan_image_folders."""

    def test_counts_and_labels(self, image_root):
        """Every file is listed once, labeled with its parent directory."""
        samples = scan_image_folders(image_root)

        assert len(samples) == 20
        assert {sample.label for sample in samples} == {"cat", "dog"}
        for sample in samples:
            assert Path(sample.image_path).parent.name == sample.label

    def test_uneven_classes(self, tmp_path):
        """N subdirectories with k_i files give sum(k_i) samples."""
        counts = {"a": 1, "b": 3, "c": 0, "d": 5}
        for label, count in counts.items():
            (tmp_path / label).mkdir()
            for i in range(count):
                (tmp_path / label / f"{i}.png").write_bytes(b"x")

        samples = scan_image_folders(tmp_path)

        assert len(samples) == sum(counts.values())
        for label, count in counts.items():
            assert sum(1 for s in samples if s.label == label) == count

    def test_paths_are_absolute(self, image_root, monkeypatch):
        """Paths are absolute even when the root is given relative to the cwd."""
        monkeypatch.chdir(image_root.parent)
        samples = scan_image_folders("Data")

        assert all(Path(sample.image_path).is_absolute() for sample in samples)
        assert all(Path(sample.image_path).exists() for sample in samples)

    def test_ignores_root_files_and_nested_directories(self, image_root):
        """Only files exactly one level below the root are samples."""
        (image_root / "README.txt").write_text("not an image")
        nested = image_root / "cat" / "more"
        nested.mkdir()
        (nested / "deep.jpg").write_bytes(b"x")

        samples = scan_image_folders(image_root)

        assert len(samples) == 20
        assert not any("deep.jpg" in sample.image_path for sample in samples)

    def test_order_is_deterministic(self, image_root):
        """Directories and files are visited in name order."""
        samples = scan_image_folders(image_root)

        assert [s.label for s in samples] == ["cat"] * 10 + ["dog"] * 10
        names = [Path(s.image_path).name for s in samples[:10]]
        assert names == sorted(names)

    def test_format_filter(self, image_root):
        """Only files of the requested formats are kept when formats are given."""
        (image_root / "cat" / "notes.txt").write_text("skip me")

        assert len(scan_image_folders(image_root)) == 21
        assert len(scan_image_folders(image_root, formats=[ImageFormat.JPG])) == 20
        assert scan_image_folders(image_root, formats=[ImageFormat.PNG]) == []

    def test_missing_root_raises(self, tmp_path):
        """A missing root fails with an OS error."""
        with pytest.raises(FileNotFoundError):
            scan_image_folders(tmp_path / "missing")

    def test_root_is_a_file_raises(self, tmp_path):
        """A root that is a regular file fails with an OS error."""
        root = tmp_path / "Data"
        root.write_text("not a directory")

        with pytest.raises(NotADirectoryError):
            scan_image_folders(root)

    def test_symlinked_class_directory_keeps_root_paths(self, image_root, tmp_path):
        """A linked class directory yields paths under the root, not the link target."""
        storage = tmp_path / "storage"
        storage.mkdir()
        (storage / "bird_00.jpg").write_bytes(b"x")
        (image_root / "bird").symlink_to(storage, target_is_directory=True)
        (image_root / "cat" / "linked.jpg").symlink_to(storage / "bird_00.jpg")

        samples = scan_image_folders(image_root)
        root = str(image_root.absolute())

        assert len(samples) == 22
        assert all(sample.image_path.startswith(root) for sample in samples)
        birds = [sample.image_path for sample in samples if sample.label == "bird"]
        assert birds == [str(image_root.absolute() / "bird" / "bird_00.jpg")]
        cats = [sample.image_path for sample in samples if sample.label == "cat"]
        assert str(image_root.absolute() / "cat" / "linked.jpg") in cats

    def test_samples_are_immutable(self, image_root):
        """Scanned samples cannot be edited."""
        sample = scan_image_folders(image_root)[0]

        with pytest.raises(ValidationError):
            sample.label = "other"
