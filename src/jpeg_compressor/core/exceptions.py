"""项目内使用的自定义异常定义。"""


class CompressorError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(CompressorError):
    """配置不合法时抛出。"""


class UnsupportedFileType(CompressorError):
    """上传文件不属于 JPEG 类型，提交前即被过滤。"""


class CompressionFailure(CompressorError):
    """单张图片压缩失败，仅影响该条目。"""


class ArtifactReleasedError(CompressorError):
    """访问已释放的压缩产物时抛出。"""
