"""压缩产物的所有权封装。"""

from __future__ import annotations

import io
import logging
import threading
from pathlib import Path
from typing import Optional

from jpeg_compressor.core.exceptions import ArtifactReleasedError

LOGGER = logging.getLogger(__name__)


class Artifact:
    """一次压缩得到的 JPEG 字节流。

    每个条目同一时刻只持有一个存活的 Artifact；被替换或条目被移除时，
    持有者负责调用 ``release``。
    """

    def __init__(self, data: bytes, *, width: int, height: int, quality: Optional[int]) -> None:
        self._data: Optional[bytes] = data
        self._size = len(data)
        self.width = width
        self.height = height
        self.quality = quality
        self.release_count = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"<Artifact {self.width}x{self.height} q={self.quality} {self._size}B {state}>"

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        data = self._data
        if data is None:
            raise ArtifactReleasedError("压缩产物已释放")
        return data

    def open(self) -> io.BytesIO:
        """返回可供下载的字节流。"""

        return io.BytesIO(self.data)

    def save(self, destination: Path) -> Path:
        """写入磁盘，返回目标路径。"""

        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.data)
        return destination

    def release(self) -> None:
        """释放字节内容。重复释放只记录警告。"""

        with self._lock:
            self.release_count += 1
            if self._data is None:
                LOGGER.warning("重复释放压缩产物：%r", self)
                return
            self._data = None
        LOGGER.debug("已释放压缩产物（%d 字节）", self._size)
