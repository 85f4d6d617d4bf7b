"""测试上传文件的收集与类型筛选。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from jpeg_compressor.core.config import SessionConfig
from jpeg_compressor.core.exceptions import UnsupportedFileType
from jpeg_compressor.core.models import Upload
from jpeg_compressor.core.uploads import collect_uploads, ensure_supported, partition_uploads


def test_jpeg_mime_and_extension_are_accepted() -> None:
    config = SessionConfig()

    ensure_supported(Upload(name="photo.JPG", content=b"x", mime_type="image/jpeg"), config)
    ensure_supported(Upload(name="photo.jpeg", content=b"x", mime_type="image/jpeg"), config)


@pytest.mark.parametrize(
    "name, mime_type",
    [
        ("notes.txt", "text/plain"),
        ("image.png", "image/png"),
        ("renamed.png", "image/jpeg"),
        ("renamed.jpg", "image/png"),
        ("unknown.jpg", ""),
    ],
)
def test_other_files_are_rejected(name: str, mime_type: str) -> None:
    with pytest.raises(UnsupportedFileType):
        ensure_supported(Upload(name=name, content=b"x", mime_type=mime_type), SessionConfig())


def test_partition_keeps_order() -> None:
    uploads = [
        Upload(name="a.jpg", content=b"1", mime_type="image/jpeg"),
        Upload(name="b.txt", content=b"2", mime_type="text/plain"),
        Upload(name="c.jpeg", content=b"3", mime_type="image/jpeg"),
    ]

    accepted, rejected = partition_uploads(uploads, SessionConfig())

    assert [u.name for u in accepted] == ["a.jpg", "c.jpeg"]
    assert [u.name for u in rejected] == ["b.txt"]


def test_collect_uploads_reads_files_and_directories(tmp_path: Path) -> None:
    source = tmp_path / "input"
    nested = source / "nested"
    nested.mkdir(parents=True)
    Image.new("RGB", (10, 10), "red").save(source / "b.jpg")
    Image.new("RGB", (10, 10), "blue").save(source / "a.jpg")
    Image.new("RGB", (10, 10), "white").save(nested / "c.jpg")
    (source / "notes.txt").write_text("hello")

    flat = collect_uploads([source])
    assert [u.name for u in flat] == ["a.jpg", "b.jpg", "notes.txt"]
    assert flat[0].mime_type == "image/jpeg"
    assert flat[2].mime_type == "text/plain"
    assert flat[0].size == (source / "a.jpg").stat().st_size

    recursive = collect_uploads([source, source / "a.jpg"], recursive=True)
    assert sorted(u.name for u in recursive) == ["a.jpg", "b.jpg", "c.jpg", "notes.txt"]
