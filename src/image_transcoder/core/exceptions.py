"""项目内使用的自定义异常定义。"""


class ImageTranscoderError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageTranscoderError):
    """配置不合法时抛出。"""


class DecodeError(ImageTranscoderError):
    """输入数据无法解码为受支持的位图。"""


class EncodeError(ImageTranscoderError):
    """编码器拒绝了给定的位图或参数。"""


class BundleError(ImageTranscoderError):
    """打包归档失败。"""


class OutputWriteError(ImageTranscoderError):
    """输出文件写入失败。"""


class AssetNotFoundError(ImageTranscoderError):
    """批次中不存在指定的资产记录。"""


class AssetBusyError(ImageTranscoderError):
    """资产记录正在处理中，不能再次触发操作。"""
