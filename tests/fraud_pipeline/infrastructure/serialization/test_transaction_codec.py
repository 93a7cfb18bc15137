"""
TransactionCodec 테스트

원시 페이로드 디코딩과 잘못된 페이로드 거부를 검증합니다.
"""

from datetime import UTC, datetime, timedelta, timezone

import orjson
import pytest

from fraud_pipeline.domain.exceptions import DecodeError
from fraud_pipeline.infrastructure.serialization.transaction_codec import TransactionCodec

INGESTION_TIME = datetime(2025, 1, 8, 13, 0, 0, tzinfo=UTC)


@pytest.fixture
def codec() -> TransactionCodec:
    """수집 시각이 고정된 코덱 픽스처"""
    return TransactionCodec(clock=lambda: INGESTION_TIME)


class TestDecodeValidPayloads:
    """정상 페이로드 디코딩 테스트"""

    def test_전체_필드_디코딩(self, codec: TransactionCodec) -> None:
        """
        GIVEN: userId, amount, timestamp 가 모두 있는 페이로드
        WHEN: decode() 를 호출하면
        THEN: 모든 필드가 Transaction 으로 변환되어야 한다
        """
        raw = b'{"userId":"54321","amount":15000,"timestamp":"2025-01-08T12:00:00Z"}'

        tx = codec.decode(raw)

        assert tx.user_id == "54321"
        assert tx.amount == 15000
        assert tx.timestamp == datetime(2025, 1, 8, 12, 0, 0, tzinfo=UTC)

    def test_timestamp_누락_시_수집_시각_사용(self, codec: TransactionCodec) -> None:
        tx = codec.decode(b'{"userId":"11111","amount":500}')

        assert tx.timestamp == INGESTION_TIME

    def test_문자열_페이로드도_허용(self, codec: TransactionCodec) -> None:
        tx = codec.decode('{"userId":"1","amount":1}')

        assert tx.amount == 1

    def test_정수_userId는_문자열로_변환(self, codec: TransactionCodec) -> None:
        tx = codec.decode(orjson.dumps({"userId": 54321, "amount": 100}))

        assert tx.user_id == "54321"

    def test_정수값_float_금액은_정수로_변환(self, codec: TransactionCodec) -> None:
        tx = codec.decode(b'{"userId":"1","amount":15000.0}')

        assert tx.amount == 15000
        assert isinstance(tx.amount, int)

    def test_타임존_오프셋은_UTC로_정규화(self, codec: TransactionCodec) -> None:
        tx = codec.decode(b'{"userId":"1","amount":1,"timestamp":"2025-01-08T21:00:00+09:00"}')

        assert tx.timestamp == datetime(2025, 1, 8, 12, 0, 0, tzinfo=UTC)
        assert tx.timestamp.utcoffset() == timedelta(0)

    def test_타임존_없는_timestamp는_UTC로_간주(self, codec: TransactionCodec) -> None:
        tx = codec.decode(b'{"userId":"1","amount":1,"timestamp":"2025-01-08T12:00:00"}')

        assert tx.timestamp == datetime(2025, 1, 8, 12, 0, 0, tzinfo=timezone.utc)

    def test_추가_필드는_무시(self, codec: TransactionCodec) -> None:
        tx = codec.decode(b'{"userId":"1","amount":7,"merchant":"shop"}')

        assert tx.amount == 7


class TestDecodeInvalidPayloads:
    """잘못된 페이로드 거부 테스트"""

    @pytest.mark.parametrize(
        "raw, message",
        [
            (b'{"userId":"bad","amount":"notanumber"}', "amount must be numeric"),
            (b'{"userId":"1","amount":-5}', "amount must be >= 0"),
            (b'{"userId":"1","amount":1.5}', "amount must be an integer"),
            (b'{"userId":"1","amount":true}', "got bool"),
            (b'{"userId":"1"}', "Missing required field: amount"),
            (b'{"userId":"1","amount":null}', "Missing required field: amount"),
            (b'{"amount":100}', "Missing required field: userId"),
            (b'{"userId":"","amount":100}', "userId cannot be empty"),
            (b'{"userId":["a"],"amount":100}', "userId must be a string or integer"),
            (b'{"userId":"1","amount":1,"timestamp":"yesterday"}', "Invalid ISO8601 timestamp"),
            (b'{"userId":"1","amount":1,"timestamp":1736337600}', "timestamp must be an ISO8601"),
            (b"[1, 2, 3]", "must be a JSON object"),
            (b"not json at all", "not valid JSON"),
            (b"", "not valid JSON"),
            (b"\xff\xfe", "not valid JSON"),
        ],
    )
    def test_잘못된_페이로드는_DecodeError(
        self, codec: TransactionCodec, raw: bytes, message: str
    ) -> None:
        """
        GIVEN: 형식이 잘못되었거나 필수 필드가 없는 페이로드
        WHEN: decode() 를 호출하면
        THEN: DecodeError 가 발생하고 원본 페이로드가 보관되어야 한다
        """
        with pytest.raises(DecodeError, match=message) as exc_info:
            codec.decode(raw)

        assert exc_info.value.payload == raw

    def test_None_페이로드는_DecodeError(self, codec: TransactionCodec) -> None:
        with pytest.raises(DecodeError, match="Empty payload"):
            codec.decode(None)

    def test_실패_후에도_다음_디코딩은_정상(self, codec: TransactionCodec) -> None:
        """디코더는 상태가 없으므로 실패가 이후 레코드에 영향을 주지 않아야 한다"""
        with pytest.raises(DecodeError):
            codec.decode(b'{"userId":"bad","amount":"notanumber"}')

        tx = codec.decode(b'{"userId":"54321","amount":15000}')

        assert tx.amount == 15000

    @pytest.mark.parametrize(
        "timestamp",
        ["0001-01-01T00:00:00+01:00", "9999-12-31T23:59:59-01:00"],
    )
    def test_UTC_변환_시_범위를_벗어난_timestamp는_DecodeError(
        self, codec: TransactionCodec, timestamp: str
    ) -> None:
        """
        GIVEN: 형식은 올바르지만 UTC 로 변환하면 datetime 범위를 벗어나는 timestamp
        WHEN: decode() 를 호출하면
        THEN: OverflowError 대신 DecodeError 가 발생해야 한다
        """
        raw = orjson.dumps({"userId": "a", "amount": 20000, "timestamp": timestamp})

        with pytest.raises(DecodeError, match="out of range") as exc_info:
            codec.decode(raw)

        assert exc_info.value.payload == raw
        assert isinstance(exc_info.value.__cause__, OverflowError | ValueError)
