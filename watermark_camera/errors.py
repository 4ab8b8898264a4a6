# watermark_camera/errors.py
"""水印相机的错误类型。

ValidationError / ContentResolutionError 属于可恢复的本地错误，
DecodeError / StorageError 会作为保存结果的一部分报告给调用方。
"""


class WatermarkCameraError(Exception):
    """所有可预期错误的基类"""

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.detail = detail


class ValidationError(WatermarkCameraError):
    """水印参数不满足约束，不能进入渲染阶段"""


class ContentResolutionError(WatermarkCameraError):
    """动态内容（时间格式、图片引用、位置）无法解析"""


class DecodeError(WatermarkCameraError):
    """原始拍摄数据无法解码为图像"""


class StorageError(WatermarkCameraError):
    """写入任一保存目标失败"""

    def __init__(self, message, target=None, detail=None):
        super().__init__(message, detail=detail)
        self.target = target
