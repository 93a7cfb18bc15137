"""
이벤트 소스 레코드 모델

이벤트 소스의 한 파티션에서 읽어 온 원시 레코드를 표현합니다.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SourceRecord:
    """
    이벤트 소스에서 수신한 원시 레코드

    Attributes:
        partition: 파티션 번호
        offset: 파티션 내 오프셋
        value: 원시 페이로드 (bytes 또는 str)
        key: 순서 보장 키 (선택)
        handle: 소스 어댑터가 처리 완료 확인(acknowledge)에 사용하는 불투명 핸들
    """

    partition: int
    offset: int
    value: bytes | str | None
    key: bytes | None = None
    handle: Any = field(default=None, repr=False, compare=False)
