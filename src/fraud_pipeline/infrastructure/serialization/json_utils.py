"""
고성능 JSON 유틸리티

orjson 으로 이벤트 페이로드를 파싱합니다. Kafka 메시지 값은 bytes 로 들어오므로
bytes 는 그대로, 그 외 값은 UTF-8 로 인코딩해 파싱합니다.
"""

from __future__ import annotations

from typing import Any

import orjson

JSONDecodeError = orjson.JSONDecodeError


def json_loads(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return orjson.loads(data)
    return orjson.loads(str(data).encode("utf-8"))