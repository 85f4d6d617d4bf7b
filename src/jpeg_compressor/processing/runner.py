"""在后台线程中托管事件循环，供阻塞式界面调用批处理器。"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Iterable, Optional, TypeVar

from jpeg_compressor.core.config import Profile, ProfileLike, SessionConfig
from jpeg_compressor.core.models import StoreSnapshot, SubmitResult, Upload
from jpeg_compressor.core.store import ItemStateStore, StoreObserver
from jpeg_compressor.processing.batch import BatchProcessor
from jpeg_compressor.processing.compression import CompressionService

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundSession:
    """线程安全的会话外观。

    所有命令都转交到事件循环线程执行，存储快照可在任意线程读取。
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        *,
        compressor: Optional[CompressionService] = None,
        profile: Optional[ProfileLike] = None,
    ) -> None:
        self.store = ItemStateStore()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="compress-session", daemon=True)
        self._closed = False
        self.processor = BatchProcessor(self.store, config=config, compressor=compressor, profile=profile)
        self._thread.start()

    def __enter__(self) -> "BackgroundSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(self._loop.shutdown_default_executor())
            self._loop.close()

    def _call(self, func: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        if self._closed:
            raise RuntimeError("会话已关闭")

        async def invoke() -> T:
            return func(*args)

        return asyncio.run_coroutine_threadsafe(invoke(), self._loop).result(timeout)

    @property
    def profile(self) -> Profile:
        return self.processor.profile

    def submit(self, uploads: Iterable[Upload]) -> SubmitResult:
        return self._call(self.processor.submit, list(uploads))

    def remove(self, item_id: str) -> bool:
        return self._call(self.processor.remove, item_id)

    def retry(self, item_id: str) -> bool:
        return self._call(self.processor.retry, item_id)

    def clear(self) -> int:
        return self._call(self.processor.clear)

    def change_profile(self, profile: ProfileLike) -> int:
        return self._call(self.processor.change_profile, profile)

    def snapshot(self) -> StoreSnapshot:
        return self.store.snapshot()

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """观察者在事件循环线程中被调用，界面需自行切回主线程。"""

        return self.store.subscribe(observer)

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        if self._closed:
            return
        future = asyncio.run_coroutine_threadsafe(self.processor.wait_idle(), self._loop)
        future.result(timeout)

    def close(self) -> None:
        """取消处理、释放产物并停止后台线程。"""

        if self._closed:
            return
        future = asyncio.run_coroutine_threadsafe(self.processor.close(), self._loop)
        try:
            future.result(timeout=5)
        except Exception:  # noqa: BLE001
            LOGGER.exception("关闭会话时出错")
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
