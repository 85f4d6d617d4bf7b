"""上传文件的收集与类型筛选。"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from jpeg_compressor.core.config import SessionConfig
from jpeg_compressor.core.exceptions import UnsupportedFileType
from jpeg_compressor.core.models import Upload


def guess_mime_type(name: str) -> str:
    """根据文件名推断 MIME 类型，无法识别时返回空字符串。"""

    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or ""


def upload_from_path(path: Path) -> Upload:
    """读取磁盘文件并构造 Upload。"""

    return Upload(name=path.name, content=path.read_bytes(), mime_type=guess_mime_type(path.name))


def ensure_supported(upload: Upload, config: SessionConfig) -> None:
    """MIME 类型与扩展名均匹配时通过，否则抛出 UnsupportedFileType。"""

    mime_type = (upload.mime_type or "").lower()
    if not mime_type.startswith(config.accepted_mime_prefix):
        raise UnsupportedFileType(f"不支持的文件类型: {upload.name} ({upload.mime_type or '未知'})")

    suffix = Path(upload.name).suffix.lower()
    if suffix not in {ext.lower() for ext in config.accepted_extensions}:
        raise UnsupportedFileType(f"不支持的扩展名: {upload.name}")


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in sorted(iterator, key=lambda p: str(p).lower()):
        if candidate.is_file():
            yield candidate


def collect_uploads(paths: Sequence[Path], recursive: bool = False) -> list[Upload]:
    """将命令行给出的文件或目录展开为 Upload 列表，保持给出的顺序。

    此处不做类型筛选，筛选由提交阶段统一完成并计数。
    """

    uploads: list[Upload] = []
    seen: set[Path] = set()
    for root in paths:
        for candidate in _iter_candidate_files(root.resolve(), recursive):
            if candidate in seen:
                continue
            seen.add(candidate)
            uploads.append(upload_from_path(candidate))
    return uploads


def partition_uploads(uploads: Iterable[Upload], config: SessionConfig) -> tuple[list[Upload], list[Upload]]:
    """按类型拆分为 (可接受, 被拒绝) 两组，组内保持原有顺序。"""

    accepted: list[Upload] = []
    rejected: list[Upload] = []
    for upload in uploads:
        try:
            ensure_supported(upload, config)
        except UnsupportedFileType:
            rejected.append(upload)
        else:
            accepted.append(upload)
    return accepted, rejected
