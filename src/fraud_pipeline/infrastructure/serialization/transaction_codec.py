"""
거래 이벤트 코덱

이벤트 소스의 원시 JSON 페이로드를 Transaction 으로 변환합니다.

페이로드 형식:
    {"userId": <string-or-int>, "amount": <int>, "timestamp": <ISO8601-string, optional>}
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from fraud_pipeline.domain.exceptions import DecodeError, ValidationException
from fraud_pipeline.domain.models.transaction import Transaction
from fraud_pipeline.infrastructure.serialization.json_utils import JSONDecodeError, json_loads

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TransactionCodec:
    """
    원시 페이로드 → Transaction 디코더

    잘못된 페이로드는 DecodeError 로 거부합니다. 로깅 외의 부수 효과는 없으며,
    한 레코드의 실패가 스트림 전체를 멈추지 않도록 호출자가 DecodeError 를 처리합니다.

    Attributes:
        _clock: timestamp 가 없을 때 사용할 수집 시각 제공 함수
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    def decode(self, raw: bytes | str | None) -> Transaction:
        """
        원시 페이로드를 Transaction 으로 변환합니다.

        Args:
            raw: 이벤트 소스에서 받은 bytes 또는 str 페이로드

        Returns:
            디코딩된 Transaction

        Raises:
            DecodeError: 형식이 잘못되었거나 필수 필드가 없거나 숫자가 아닌 경우

        Examples:
            >>> codec = TransactionCodec()
            >>> tx = codec.decode(b'{"userId":"54321","amount":15000}')
            >>> (tx.user_id, tx.amount)
            ('54321', 15000)
        """
        if raw is None:
            raise DecodeError("Empty payload (tombstone record)", payload=raw)

        try:
            payload = json_loads(raw)
        except (JSONDecodeError, UnicodeError) as e:
            raise DecodeError("Payload is not valid JSON", payload=raw, cause=e)

        if not isinstance(payload, dict):
            raise DecodeError(
                f"Payload must be a JSON object, got {type(payload).__name__}", payload=raw
            )

        user_id = self._decode_user_id(payload, raw)
        amount = self._decode_amount(payload, raw)
        timestamp = self._decode_timestamp(payload, raw)

        try:
            transaction = Transaction(user_id=user_id, amount=amount, timestamp=timestamp)
        except ValidationException as e:
            raise DecodeError(f"Invalid transaction: {e.message}", payload=raw, cause=e)

        logger.debug(f"Decoded {transaction}")
        return transaction

    def _decode_user_id(self, payload: dict[str, Any], raw: bytes | str) -> str:
        if "userId" not in payload or payload["userId"] is None:
            raise DecodeError("Missing required field: userId", payload=raw)

        user_id = payload["userId"]
        # bool 은 int 의 하위 타입이므로 먼저 걸러냅니다
        if isinstance(user_id, bool) or not isinstance(user_id, (str, int)):
            raise DecodeError(
                f"userId must be a string or integer, got {type(user_id).__name__}",
                payload=raw,
            )

        user_id = str(user_id).strip()
        if not user_id:
            raise DecodeError("userId cannot be empty", payload=raw)
        return user_id

    def _decode_amount(self, payload: dict[str, Any], raw: bytes | str) -> int:
        if "amount" not in payload or payload["amount"] is None:
            raise DecodeError("Missing required field: amount", payload=raw)

        amount = payload["amount"]
        if isinstance(amount, bool):
            raise DecodeError("amount must be numeric, got bool", payload=raw)

        if isinstance(amount, float):
            if not amount.is_integer():
                raise DecodeError(f"amount must be an integer, got {amount}", payload=raw)
            amount = int(amount)

        if not isinstance(amount, int):
            raise DecodeError(
                f"amount must be numeric, got {type(amount).__name__}: {amount!r}", payload=raw
            )

        if amount < 0:
            raise DecodeError(f"amount must be >= 0, got {amount}", payload=raw)
        return amount

    def _decode_timestamp(self, payload: dict[str, Any], raw: bytes | str) -> datetime:
        value = payload.get("timestamp")
        if value is None:
            return self._clock()

        if not isinstance(value, str):
            raise DecodeError(
                f"timestamp must be an ISO8601 string, got {type(value).__name__}", payload=raw
            )

        try:
            timestamp = datetime.fromisoformat(value)
        except ValueError as e:
            raise DecodeError(f"Invalid ISO8601 timestamp: {value!r}", payload=raw, cause=e)

        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=UTC)

        try:
            return timestamp.astimezone(UTC)
        except (ValueError, OverflowError) as e:
            raise DecodeError(
                f"timestamp out of range after UTC conversion: {value!r}", payload=raw, cause=e
            )
