"""模拟进度信号。

进度与真实压缩耗时无关，只用于给界面提供连续、可预期的反馈。
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

LOGGER = logging.getLogger(__name__)

PROGRESS_MAX = 100


class ProgressSimulator:
    """按固定间隔产生 0 到 100 严格递增的进度值。"""

    def __init__(self, step: int = 2, interval: float = 0.05) -> None:
        if not 0 < step <= PROGRESS_MAX:
            raise ValueError("step 必须在 1~100 之间")
        self.step = step
        self.interval = interval

    async def run(self, item_id: str) -> AsyncIterator[int]:
        """每次调用都从 0 重新开始；消费者停止迭代即视为取消。"""

        LOGGER.debug("开始模拟进度：%s", item_id)
        value = 0
        while True:
            yield value
            if value >= PROGRESS_MAX:
                return
            await asyncio.sleep(self.interval)
            value = min(PROGRESS_MAX, value + self.step)
