"""批处理器：逐个驱动条目完成 模拟进度 -> 压缩 -> 结果 的生命周期。"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from contextlib import aclosing
from typing import Deque, Dict, Iterable, Optional, Tuple

from jpeg_compressor.core.artifacts import Artifact
from jpeg_compressor.core.config import Profile, ProfileLike, SessionConfig, resolve_profile
from jpeg_compressor.core.exceptions import CompressionFailure
from jpeg_compressor.core.models import (
    STATUS_DONE,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    Item,
    SubmitResult,
    Upload,
)
from jpeg_compressor.core.store import ItemStateStore
from jpeg_compressor.core.uploads import partition_uploads
from jpeg_compressor.processing.compression import CompressionService
from jpeg_compressor.processing.progress import PROGRESS_MAX, ProgressSimulator

LOGGER = logging.getLogger(__name__)

PHASE_IDLE = "idle"
PHASE_DRAINING = "draining"
PHASE_SIMULATING = "simulating"
PHASE_COMPRESSING = "compressing"


class BatchProcessor:
    """按提交顺序串行处理条目，并维护条目状态存储。

    必须在事件循环线程中调用；各方法在两个挂起点之间同步完成修改，
    因此无需额外加锁。每个排队的运行都带有条目级的代号，
    条目被移除或重新排队后，旧运行的结果一律丢弃。
    """

    def __init__(
        self,
        store: Optional[ItemStateStore] = None,
        *,
        config: Optional[SessionConfig] = None,
        compressor: Optional[CompressionService] = None,
        simulator: Optional[ProgressSimulator] = None,
        profile: Optional[ProfileLike] = None,
    ) -> None:
        self.config = config or SessionConfig()
        self.config.validate()
        self.store = store if store is not None else ItemStateStore()
        self.compressor = compressor or CompressionService(self.config.encoder)
        self.simulator = simulator or ProgressSimulator(
            step=self.config.progress_step, interval=self.config.progress_interval
        )
        self._profile = resolve_profile(profile if profile is not None else self.config.default_profile)
        self._queue: Deque[Tuple[str, int]] = deque()
        self._generations: Dict[str, int] = {}
        self._sequence = 0
        self._batch = 0
        self._drain_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None
        self.phase = PHASE_IDLE
        self.current_item_id: Optional[str] = None

    @property
    def profile(self) -> Profile:
        return self._profile

    @property
    def is_idle(self) -> bool:
        return self._drain_task is None or self._drain_task.done()

    # ---------------------- 命令入口 ---------------------- #

    def submit(self, uploads: Iterable[Upload]) -> SubmitResult:
        """筛选并登记上传文件，随后启动（或继续）排队处理。"""

        supported, unsupported = partition_uploads(uploads, self.config)
        rejected = [upload.name for upload in unsupported]
        accepted: list[Item] = []
        self._batch += 1
        for upload in supported:
            self._sequence += 1
            accepted.append(
                Item(
                    id=uuid.uuid4().hex,
                    name=upload.name,
                    source=upload.content,
                    original_size=upload.size,
                    sequence=self._sequence,
                    batch=self._batch,
                )
            )

        if rejected:
            LOGGER.warning("已拒绝 %d 个非 JPEG 文件：%s", len(rejected), ", ".join(rejected))

        self.store.append(accepted)
        for item in accepted:
            self._enqueue(item.id)
        if accepted:
            LOGGER.info("已加入 %d 张图片，当前档位 %s", len(accepted), self._profile.name)
            self._ensure_draining()

        return SubmitResult(accepted=tuple(item.id for item in accepted), rejected=tuple(rejected))

    def change_profile(self, profile: ProfileLike) -> int:
        """切换档位并按原顺序重放所有保留源数据的条目，返回重放数量。"""

        new_profile = resolve_profile(profile)
        if new_profile == self._profile:
            return 0
        LOGGER.info("压缩档位切换：%s -> %s", self._profile.name, new_profile.name)
        self._profile = new_profile

        self._queue.clear()
        replayed = 0
        for item in self.store.snapshot().items:
            if item.source is None:
                continue
            self.store.update(item.id, status=STATUS_PENDING, progress=0, message=None)
            self._enqueue(item.id)
            replayed += 1

        if replayed:
            self._ensure_draining()
        return replayed

    def retry(self, item_id: str) -> bool:
        """重新排队单个失败条目。"""

        item = self.store.get(item_id)
        if item is None or item.status != STATUS_FAILED or item.source is None:
            return False
        self.store.update(item_id, status=STATUS_PENDING, progress=0, message=None)
        self._enqueue(item_id)
        self._ensure_draining()
        return True

    def remove(self, item_id: str) -> bool:
        """立即移除条目；正在处理中的运行结果会在到达时被丢弃。"""

        self._generations.pop(item_id, None)
        removed = self.store.remove(item_id)
        if removed is None:
            return False
        if removed.artifact is not None:
            removed.artifact.release()
        LOGGER.info("已移除 %s", removed.name)
        return True

    def clear(self) -> int:
        """移除全部条目并清空队列。"""

        self._queue.clear()
        self._generations.clear()
        removed = self.store.clear()
        for item in removed:
            if item.artifact is not None:
                item.artifact.release()
        return len(removed)

    async def wait_idle(self) -> None:
        """等待队列处理完毕。"""

        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def close(self) -> None:
        """停止处理并释放全部压缩产物。"""

        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            # 工作线程无法中断，等它结束以便释放迟到的产物。
            await asyncio.wait([inflight])
        self._drain_task = None
        self.clear()

    # ---------------------- 排队与执行 ---------------------- #

    def _enqueue(self, item_id: str) -> None:
        generation = self._generations.get(item_id, 0) + 1
        self._generations[item_id] = generation
        self._queue.append((item_id, generation))

    def _is_current(self, item_id: str, generation: int) -> bool:
        return self._generations.get(item_id) == generation and item_id in self.store

    def _ensure_draining(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            loop = asyncio.get_running_loop()
            self._drain_task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        self.phase = PHASE_DRAINING
        try:
            while self._queue:
                item_id, generation = self._queue.popleft()
                if not self._is_current(item_id, generation):
                    continue
                await self._process_item(item_id, generation)
                if self._queue and self.config.pacing_delay > 0:
                    await asyncio.sleep(self.config.pacing_delay)
        finally:
            self.phase = PHASE_IDLE
            self.current_item_id = None

    async def _process_item(self, item_id: str, generation: int) -> None:
        item = self.store.get(item_id)
        if item is None or item.source is None:
            return
        profile = self._profile
        self.current_item_id = item_id
        self.phase = PHASE_SIMULATING
        self.store.update(item_id, status=STATUS_PROCESSING, progress=0, message=None)

        # 最终的 100 与完成状态一起写入，失败的条目不会显示为 100。
        async with aclosing(self.simulator.run(item_id)) as ticks:
            async for value in ticks:
                if not self._is_current(item_id, generation):
                    LOGGER.debug("条目 %s 已失效，停止转发进度", item_id)
                    return
                if value >= PROGRESS_MAX:
                    break
                if value != self.store.get(item_id).progress:
                    self.store.update(item_id, progress=value)

        if not self._is_current(item_id, generation):
            return

        self.phase = PHASE_COMPRESSING
        try:
            artifact = await self._run_compression(item.source, profile)
        except CompressionFailure as exc:
            self._settle_failed(item_id, generation, str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("压缩 %s 时出现未预期的异常", item.name)
            self._settle_failed(item_id, generation, str(exc) or exc.__class__.__name__)
        else:
            self._settle_done(item_id, generation, artifact, profile)

    async def _run_compression(self, source: bytes, profile: Profile) -> Artifact:
        """在线程池中压缩；等待方被取消时，迟到的结果在到达后释放。"""

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.compressor.compress, source, profile)
        self._inflight = future
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(_release_late_result)
            raise
        finally:
            if self._inflight is future and future.done():
                self._inflight = None

    def _settle_done(self, item_id: str, generation: int, artifact: Artifact, profile: Profile) -> None:
        if not self._is_current(item_id, generation):
            LOGGER.debug("条目 %s 已失效，丢弃压缩结果", item_id)
            artifact.release()
            return

        current = self.store.get(item_id)
        if current.artifact is not None:
            current.artifact.release()

        changes: dict[str, object] = dict(
            status=STATUS_DONE,
            progress=PROGRESS_MAX,
            artifact=artifact,
            compressed_size=artifact.size,
            profile_name=profile.name,
            message=None,
            settled_at=time.monotonic(),
        )
        if not self.config.retain_sources:
            changes["source"] = None
        self.store.update(item_id, **changes)
        LOGGER.info(
            "%s 压缩完成：%d -> %d 字节（%s）",
            current.name,
            current.original_size,
            artifact.size,
            profile.name,
        )

    def _settle_failed(self, item_id: str, generation: int, reason: str) -> None:
        if not self._is_current(item_id, generation):
            return

        current = self.store.get(item_id)
        if current.artifact is not None:
            # 旧档位的产物已失效。
            current.artifact.release()
        self.store.update(
            item_id,
            status=STATUS_FAILED,
            artifact=None,
            compressed_size=None,
            profile_name=None,
            message=reason,
            settled_at=time.monotonic(),
        )
        LOGGER.warning("%s 压缩失败：%s", current.name, reason)


def _release_late_result(future: asyncio.Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    LOGGER.debug("处理已取消，释放迟到的压缩结果")
    future.result().release()
