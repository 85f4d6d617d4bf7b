"""尺寸与比例的展示格式。"""

from __future__ import annotations

from typing import Optional

from jpeg_compressor.core.config import BYTES_PER_MB


def format_megabytes(size: Optional[int]) -> str:
    """字节数格式化为保留两位小数的 MB 文本。"""

    if size is None:
        return "-"
    return f"{size / BYTES_PER_MB:.2f} MB"


def format_ratio(ratio: Optional[float]) -> str:
    """压缩比例格式化为一位小数的百分比。"""

    if ratio is None:
        return "-"
    return f"{ratio * 100:.1f}%"
