"""测试后台会话的线程安全外观。"""

from __future__ import annotations

import threading

import pytest

from jpeg_compressor.core.artifacts import Artifact
from jpeg_compressor.core.config import Profile, SessionConfig
from jpeg_compressor.core.models import STATUS_DONE, StoreChange, Upload
from jpeg_compressor.processing.runner import BackgroundSession


class HalvingCompressor:
    def __init__(self) -> None:
        self.artifacts: list[Artifact] = []

    def compress(self, source: bytes, profile: Profile) -> Artifact:
        artifact = Artifact(source[: max(1, len(source) // 2)], width=1, height=1, quality=80)
        self.artifacts.append(artifact)
        return artifact


def make_session(compressor: HalvingCompressor) -> BackgroundSession:
    return BackgroundSession(SessionConfig(progress_interval=0, pacing_delay=0), compressor=compressor)


def test_submit_and_wait_from_another_thread() -> None:
    compressor = HalvingCompressor()
    with make_session(compressor) as session:
        observer_threads: set[str] = set()

        def observer(change: StoreChange) -> None:
            observer_threads.add(threading.current_thread().name)

        session.subscribe(observer)
        result = session.submit(
            [
                Upload(name="a.jpg", content=b"aaaa", mime_type="image/jpeg"),
                Upload(name="b.gif", content=b"bbbb", mime_type="image/gif"),
            ]
        )
        session.wait_idle(timeout=10)
        snapshot = session.snapshot()

        assert result.rejected_count == 1
        assert [item.status for item in snapshot.items] == [STATUS_DONE]
        assert observer_threads == {"compress-session"}

    assert compressor.artifacts[0].released


def test_profile_change_and_remove_through_session() -> None:
    compressor = HalvingCompressor()
    with make_session(compressor) as session:
        (item_id,) = session.submit([Upload(name="a.jpg", content=b"aaaa", mime_type="image/jpeg")]).accepted
        session.wait_idle(timeout=10)

        assert session.change_profile("low") == 1
        session.wait_idle(timeout=10)
        assert session.profile.name == "low"
        assert session.snapshot().items[0].profile_name == "low"

        assert session.remove(item_id) is True
        assert len(session.snapshot().items) == 0

    assert [artifact.release_count for artifact in compressor.artifacts] == [1, 1]


def test_closed_session_rejects_commands() -> None:
    session = make_session(HalvingCompressor())
    session.close()
    session.close()

    with pytest.raises(RuntimeError):
        session.submit([])
