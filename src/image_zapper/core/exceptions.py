"""项目内使用的自定义异常定义。"""


class ZapperError(Exception):
    """基础异常类型。"""


class SetupError(ZapperError):
    """启动检查失败（输入目录缺失、输出目录无法创建），在处理任何文件前抛出。"""


class FileProcessingError(ZapperError):
    """单个文件处理失败，只影响该文件。"""

    status = "error"


class FileIOError(FileProcessingError):
    """备份复制或文件读写失败。"""

    status = "error-io"


class DecodeError(FileProcessingError):
    """源图片损坏或格式不受支持。"""

    status = "error-decode"


class EncodeError(FileProcessingError):
    """目标格式无法容纳像素数据，或写入失败。"""

    status = "error-encode"


class OptimizeError(FileProcessingError):
    """PNG 无损重压缩失败；目标文件保留未优化版本。"""

    status = "error-optimize"
