"""服务层异常

路由层统一把 ServiceError 转换为 JSON 响应，status_code 即 HTTP 状态码。
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(ServiceError):
    """调用方参数缺失或格式错误"""

    status_code = 400


class NotConnected(ServiceError):
    """用户尚未连接对应的第三方平台"""

    status_code = 401


class NotFound(ServiceError):
    status_code = 404


class PersistenceError(ServiceError):
    """数据库读写失败，不重试"""

    status_code = 500


class UpstreamError(ServiceError):
    """第三方接口（Slack / Asana / Anthropic）调用失败"""

    status_code = 502


class MalformedResponse(UpstreamError):
    """模型输出中找不到合法的 JSON 对象"""
