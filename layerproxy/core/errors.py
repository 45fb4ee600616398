# layerproxy/core/errors.py
from typing import Optional


class ProxyError(Exception):
    """Base exception for failures the proxy reports back to its caller.

    status_code는 main.py의 예외 핸들러가 그대로 HTTP 응답 코드로 사용합니다.
    """
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
