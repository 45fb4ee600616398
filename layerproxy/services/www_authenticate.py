# layerproxy/services/www_authenticate.py
"""WWW-Authenticate 헤더 파서.

    Bearer realm="https://auth.example.com/token",service="registry.example.com"

형태의 값을 {"bearer": {"realm": ..., "service": ...}} 로 변환합니다.
레지스트리마다 헤더 형식이 조금씩 다르므로 잘못된 조각은 예외 없이 건너뜁니다.
"""
from typing import Dict, Optional, Tuple

AuthChallenge = Dict[str, Dict[str, str]]

_WHITESPACE = " \t\r\n"


def _skip(header: str, pos: int, chars: str) -> int:
    while pos < len(header) and header[pos] in chars:
        pos += 1
    return pos


def _read_token(header: str, pos: int) -> Tuple[str, int]:
    start = pos
    while pos < len(header) and header[pos] not in _WHITESPACE + ",=":
        pos += 1
    return header[start:pos], pos


def _read_quoted(header: str, pos: int) -> Tuple[Optional[str], int]:
    # pos는 여는 따옴표 바로 다음 위치
    chars = []
    while pos < len(header):
        char = header[pos]
        if char == "\\" and pos + 1 < len(header):
            chars.append(header[pos + 1])
            pos += 2
        elif char == '"':
            return "".join(chars), pos + 1
        else:
            chars.append(char)
            pos += 1
    return None, pos  # 닫는 따옴표 없음


def _read_value(header: str, pos: int) -> Tuple[Optional[str], int]:
    if pos < len(header) and header[pos] == '"':
        value, pos = _read_quoted(header, pos + 1)
    else:
        end = header.find(",", pos)
        end = len(header) if end == -1 else end
        value, pos = header[pos:end].strip(), end
    # 값 뒤에 붙은 쓰레기 문자는 다음 쉼표까지 버림
    end = header.find(",", pos)
    return value, len(header) if end == -1 else end


def _read_param(header: str, pos: int) -> Tuple[Optional[str], Optional[str], int]:
    """Reads one ``key=value`` pair starting at ``pos``.

    Returns ``(None, None, pos)`` without consuming anything when the next
    token is not followed by ``=`` (it starts the next challenge instead).
    """
    start = _skip(header, pos, _WHITESPACE + ",")
    key, after_key = _read_token(header, start)
    after_key = _skip(header, after_key, _WHITESPACE)
    if not key or after_key >= len(header) or header[after_key] != "=":
        return None, None, pos
    value, end = _read_value(header, _skip(header, after_key + 1, _WHITESPACE))
    return key, value, end


def parse_www_authenticate(header: Optional[str]) -> AuthChallenge:
    """Parses a WWW-Authenticate header value into scheme -> parameters.

    Scheme names and parameter keys are lower-cased, values keep their case and
    have quoted-pair escapes removed. A scheme without parameters maps to an
    empty dict. Malformed fragments are dropped rather than raising.
    """
    challenges: AuthChallenge = {}
    if not header:
        return challenges

    pos = 0
    while True:
        pos = _skip(header, pos, _WHITESPACE + ",")
        if pos >= len(header):
            break

        scheme, pos = _read_token(header, pos)
        if not scheme or (pos < len(header) and header[pos] == "="):
            # 스킴 없이 등장한 파라미터: 값까지 건너뛰고 계속
            _, pos = _read_value(header, _skip(header, pos + 1, _WHITESPACE))
            continue

        params: Dict[str, str] = {}
        while True:
            key, value, next_pos = _read_param(header, pos)
            if key is None:
                break
            if value is not None:
                params[key.lower()] = value
            pos = next_pos
        challenges[scheme.lower()] = params

    return challenges
