from pathlib import Path

import pytest
from PIL import Image

from faceblur.exporter import NoImageError, resolve_export_path, save_image
from faceblur.loader import PhotoLoadError, load_photo_source
from faceblur.models import ExportOptions


def _photo_with_gps(path: Path) -> Path:
    image = Image.new("RGB", (64, 48), (120, 60, 30))
    exif = Image.Exif()
    # 0x0132 DateTime; 0x8825 GPS IFD holding GPSLatitudeRef (1) and GPSLatitude (2)
    exif[0x0132] = "2024:05:01 10:00:00"
    exif[0x8825] = {0x0001: "N", 0x0002: (52.0, 30.0, 0.0)}
    image.save(path, format="JPEG", exif=exif.tobytes())
    return path


def test_loader_reads_gps_metadata(tmp_path: Path) -> None:
    loaded = load_photo_source(_photo_with_gps(tmp_path / "gps.jpg"))

    assert loaded.image.mode == "RGB"
    assert loaded.metadata is not None
    assert loaded.metadata["DateTime"] == "2024:05:01 10:00:00"
    assert loaded.metadata["GPSLatitude"] == pytest.approx(52.5)


def test_loader_rejects_unknown_formats(tmp_path: Path) -> None:
    sample = tmp_path / "sample.ARW"
    sample.write_bytes(b"not-a-real-image")

    with pytest.raises(PhotoLoadError):
        load_photo_source(sample)


def test_export_strips_metadata_by_default(tmp_path: Path) -> None:
    loaded = load_photo_source(_photo_with_gps(tmp_path / "gps.jpg"))

    saved = save_image(loaded.image, tmp_path / "clean.jpg", loaded.metadata, ExportOptions())

    with Image.open(saved) as reopened:
        assert not reopened.getexif()


def test_export_can_keep_metadata(tmp_path: Path) -> None:
    loaded = load_photo_source(_photo_with_gps(tmp_path / "gps.jpg"))

    saved = save_image(
        loaded.image,
        tmp_path / "kept.jpg",
        loaded.metadata,
        ExportOptions(remove_metadata=False),
    )

    with Image.open(saved) as reopened:
        exif = reopened.getexif()
        assert exif.get(0x0132) == "2024:05:01 10:00:00"
        assert exif.get_ifd(0x8825)


def test_export_path_is_forced_to_a_supported_suffix() -> None:
    assert resolve_export_path(Path("a/out.png")) == (Path("a/out.png"), "PNG")
    assert resolve_export_path(Path("a/out.JPEG")) == (Path("a/out.JPEG"), "JPEG")
    assert resolve_export_path(Path("a/out.heic")) == (Path("a/out.jpg"), "JPEG")


def test_export_without_image_fails(tmp_path: Path) -> None:
    with pytest.raises(NoImageError):
        save_image(None, tmp_path / "out.jpg", None, ExportOptions())
