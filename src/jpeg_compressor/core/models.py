"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from jpeg_compressor.core.artifacts import Artifact

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_DONE, STATUS_FAILED})

DOWNLOAD_PREFIX = "compressed-"


@dataclass(slots=True, frozen=True)
class Upload:
    """用户提交的单个文件。"""

    name: str
    content: bytes = field(repr=False)
    mime_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True, frozen=True)
class Item:
    """单张图片及其处理记录。

    Item 为不可变值，存储层每次修改都会生成新的实例，
    因此任何读者拿到的都是完整一致的状态。
    """

    id: str
    name: str
    source: Optional[bytes] = field(repr=False)
    original_size: int
    sequence: int
    batch: int
    status: str = STATUS_PENDING
    progress: int = 0
    artifact: Optional[Artifact] = None
    compressed_size: Optional[int] = None
    profile_name: Optional[str] = None
    message: Optional[str] = None
    settled_at: Optional[float] = None

    @property
    def download_name(self) -> str:
        return f"{DOWNLOAD_PREFIX}{self.name}"

    @property
    def is_settled(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def saved_ratio(self) -> Optional[float]:
        """节省比例 1 - compressed/original，未完成时为 None。"""

        if self.compressed_size is None or self.original_size <= 0:
            return None
        return 1 - self.compressed_size / self.original_size


@dataclass(slots=True, frozen=True)
class SubmitResult:
    """一次提交的受理结果。"""

    accepted: tuple[str, ...]
    rejected: tuple[str, ...]

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


@dataclass(slots=True, frozen=True)
class StoreSnapshot:
    """存储层在某一版本下的完整快照。"""

    version: int
    items: tuple[Item, ...]

    def get(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)


@dataclass(slots=True, frozen=True)
class StoreChange:
    """推送给观察者的变更通知。"""

    kind: str  # added | updated | removed | cleared
    item_ids: tuple[str, ...]
    snapshot: StoreSnapshot
