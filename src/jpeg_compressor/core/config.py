"""压缩档位与会话配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Sequence, Union

from jpeg_compressor.core.exceptions import InvalidConfigurationError

BYTES_PER_MB = 1024 * 1024


@dataclass(slots=True, frozen=True)
class Profile:
    """压缩档位：目标体积上限与最长边上限。"""

    name: str
    label: str
    max_size_mb: float
    max_dimension: int

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * BYTES_PER_MB)


PROFILES: Dict[str, Profile] = {
    "high": Profile(name="high", label="高画质", max_size_mb=2.0, max_dimension=2560),
    "medium": Profile(name="medium", label="均衡", max_size_mb=1.0, max_dimension=1920),
    "low": Profile(name="low", label="高压缩", max_size_mb=0.5, max_dimension=1280),
}

ProfileLike = Union[str, Profile]


def resolve_profile(value: ProfileLike) -> Profile:
    """将档位名称或 Profile 对象统一为 Profile。"""

    if isinstance(value, Profile):
        return value
    profile = PROFILES.get(str(value).strip().lower())
    if profile is None:
        raise InvalidConfigurationError(f"未知的压缩档位: {value}")
    return profile


@dataclass(slots=True)
class EncoderConfig:
    """JPEG 编码迭代参数。"""

    initial_quality: int = 92
    min_quality: int = 10
    max_iterations: int = 10
    step_ratio: float = 0.95
    progressive: bool = True


@dataclass(slots=True)
class SessionConfig:
    """单次会话的处理配置。"""

    default_profile: str = "medium"
    progress_step: int = 2
    progress_interval: float = 0.05
    pacing_delay: float = 0.5
    retain_sources: bool = True
    accepted_mime_prefix: str = "image/jpeg"
    accepted_extensions: Sequence[str] = field(default_factory=lambda: (".jpg", ".jpeg"))
    encoder: EncoderConfig = field(default_factory=EncoderConfig)

    def validate(self) -> None:
        """检查配置取值，非法时抛出 InvalidConfigurationError。"""

        resolve_profile(self.default_profile)
        if not 0 < self.progress_step <= 100:
            raise InvalidConfigurationError("progress_step 必须在 1~100 之间")
        if self.progress_interval < 0 or self.pacing_delay < 0:
            raise InvalidConfigurationError("延迟时间不能为负数")
        if not self.accepted_extensions:
            raise InvalidConfigurationError("至少需要一个可接受的扩展名")

        encoder = self.encoder
        if not 1 <= encoder.min_quality <= encoder.initial_quality <= 100:
            raise InvalidConfigurationError("JPEG 质量需满足 1 <= min_quality <= initial_quality <= 100")
        if encoder.max_iterations < 0:
            raise InvalidConfigurationError("max_iterations 不能为负数")
        if not 0 < encoder.step_ratio < 1:
            raise InvalidConfigurationError("step_ratio 必须在 (0, 1) 区间内")
