"""
Transaction / DataPoint 도메인 모델 테스트
"""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime, timedelta, timezone

import pytest

from fraud_pipeline.domain.exceptions import ValidationException
from fraud_pipeline.domain.models.transaction import DataPoint, Transaction

EVENT_TIME = datetime(2025, 1, 8, 12, 0, 0, tzinfo=UTC)


class TestTransaction:
    """Transaction 엔티티 테스트"""

    def test_transaction_creation(self) -> None:
        tx = Transaction(user_id="54321", amount=15000, timestamp=EVENT_TIME)

        assert tx.user_id == "54321"
        assert tx.amount == 15000
        assert tx.timestamp == EVENT_TIME

    def test_transaction_is_immutable(self) -> None:
        tx = Transaction(user_id="54321", amount=15000, timestamp=EVENT_TIME)

        with pytest.raises(FrozenInstanceError):
            tx.amount = 1  # type: ignore[misc]

    def test_zero_amount_is_valid(self) -> None:
        tx = Transaction(user_id="1", amount=0, timestamp=EVENT_TIME)

        assert tx.amount == 0

    @pytest.mark.parametrize("amount", [-1, 1.5, "100", True])
    def test_invalid_amount_rejected(self, amount: object) -> None:
        """음수, 비정수, bool 금액은 거부되어야 한다"""
        with pytest.raises(ValidationException, match="amount"):
            Transaction(user_id="1", amount=amount, timestamp=EVENT_TIME)  # type: ignore[arg-type]

    def test_empty_user_id_rejected(self) -> None:
        with pytest.raises(ValidationException, match="user_id"):
            Transaction(user_id="", amount=10, timestamp=EVENT_TIME)

    def test_naive_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationException, match="timezone-aware"):
            Transaction(user_id="1", amount=10, timestamp=datetime(2025, 1, 8, 12, 0, 0))

    def test_transaction_str(self) -> None:
        result = str(Transaction(user_id="42", amount=9999, timestamp=EVENT_TIME))

        assert "42" in result
        assert "9999" in result
        assert "Transaction" in result


class TestDataPoint:
    """DataPoint 변환 테스트"""

    def test_거래_하나가_DataPoint_하나로_변환됨(self) -> None:
        """
        GIVEN: 사기로 판정된 거래
        WHEN: DataPoint.from_transaction() 을 호출하면
        THEN: measurement, tag(userId), field(amount) 가 올바르게 채워져야 한다
        """
        tx = Transaction(user_id="54321", amount=15000, timestamp=EVENT_TIME)
        written_at = datetime(2025, 1, 9, 8, 0, 0, tzinfo=UTC)

        point = DataPoint.from_transaction(tx, written_at=written_at)

        assert point.measurement == "fraud_transactions"
        assert point.tags == {"userId": "54321"}
        assert point.fields == {"amount": 15000}
        assert point.timestamp == written_at

    def test_기본값은_처리_시각을_사용(self) -> None:
        """이벤트 시각이 아니라 기록 시각이 타임스탬프가 되어야 한다"""
        tx = Transaction(user_id="1", amount=20000, timestamp=EVENT_TIME)
        before = datetime.now(UTC) - timedelta(milliseconds=1)

        point = DataPoint.from_transaction(tx)

        assert point.timestamp >= before
        assert point.timestamp != EVENT_TIME

    def test_use_event_time_이면_거래_시각을_사용(self) -> None:
        tx = Transaction(user_id="1", amount=20000, timestamp=EVENT_TIME)

        point = DataPoint.from_transaction(
            tx, written_at=datetime(2030, 1, 1, tzinfo=UTC), use_event_time=True
        )

        assert point.timestamp == EVENT_TIME

    def test_타임스탬프는_밀리초_정밀도로_절삭됨(self) -> None:
        tx = Transaction(user_id="1", amount=20000, timestamp=EVENT_TIME)
        written_at = datetime(2025, 1, 8, 12, 0, 0, 123987, tzinfo=UTC)

        point = DataPoint.from_transaction(tx, written_at=written_at)

        assert point.timestamp.microsecond == 123000
        assert point.timestamp_millis() == int(EVENT_TIME.timestamp()) * 1000 + 123

    def test_다른_타임존은_UTC로_정규화됨(self) -> None:
        tx = Transaction(user_id="1", amount=20000, timestamp=EVENT_TIME)
        kst = timezone(timedelta(hours=9))
        written_at = datetime(2025, 1, 8, 21, 0, 0, tzinfo=kst)

        point = DataPoint.from_transaction(tx, written_at=written_at)

        assert point.timestamp == EVENT_TIME
        assert point.timestamp.tzinfo == UTC

    def test_같은_입력이면_같은_DataPoint(self) -> None:
        """변환은 결정적이어야 한다"""
        tx = Transaction(user_id="7", amount=12345, timestamp=EVENT_TIME)
        written_at = datetime(2025, 1, 8, 12, 0, 1, tzinfo=UTC)

        assert DataPoint.from_transaction(tx, written_at) == DataPoint.from_transaction(
            tx, written_at
        )
