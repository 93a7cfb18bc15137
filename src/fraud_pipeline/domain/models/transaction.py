"""
거래 및 데이터 포인트 도메인 모델

디코딩된 거래(Transaction)와 저장소에 기록되는 출력 레코드(DataPoint)를 정의합니다.
두 모델 모두 생성 후 변경할 수 없는 불변 객체입니다.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from fraud_pipeline.domain.exceptions import ValidationException

FRAUD_MEASUREMENT = "fraud_transactions"
USER_ID_TAG = "userId"
AMOUNT_FIELD = "amount"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Transaction:
    """
    디코딩된 거래 정보

    Attributes:
        user_id: 사용자 식별자 (불투명 문자열)
        amount: 거래 금액 (최소 통화 단위, 0 이상의 정수)
        timestamp: 거래 시각 (UTC). 원본에 없으면 수집 시각

    Examples:
        >>> from datetime import datetime, UTC
        >>> tx = Transaction(user_id="54321", amount=15000, timestamp=datetime.now(UTC))
        >>> tx.amount
        15000
    """

    user_id: str
    amount: int
    timestamp: datetime

    def __post_init__(self) -> None:
        errors = []

        if not isinstance(self.user_id, str) or not self.user_id:
            errors.append("user_id must be a non-empty string")

        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            errors.append(f"amount must be an integer, got {type(self.amount).__name__}")
        elif self.amount < 0:
            errors.append(f"amount must be >= 0, got {self.amount}")

        if not isinstance(self.timestamp, datetime) or self.timestamp.tzinfo is None:
            errors.append("timestamp must be a timezone-aware datetime")

        if errors:
            raise ValidationException(f"Transaction validation failed: {'; '.join(errors)}")

    def __str__(self) -> str:
        return (
            f"Transaction(user_id={self.user_id}, amount={self.amount}, "
            f"timestamp={self.timestamp.isoformat()})"
        )


def truncate_to_millis(value: datetime) -> datetime:
    """datetime 을 밀리초 정밀도로 절삭합니다."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


@dataclass(frozen=True)
class DataPoint:
    """
    시계열 저장소에 기록되는 출력 레코드

    측정값 이름은 항상 "fraud_transactions" 이며, 태그 하나(userId)와
    필드 하나(amount)를 가집니다. 타임스탬프는 밀리초 정밀도입니다.

    Attributes:
        user_id: 태그 값 (userId)
        amount: 필드 값 (amount, 정수)
        timestamp: 기록 시각 (UTC, 밀리초 정밀도)
        measurement: 측정값 이름 (고정)
    """

    user_id: str
    amount: int
    timestamp: datetime
    measurement: str = field(default=FRAUD_MEASUREMENT)

    @classmethod
    def from_transaction(
        cls,
        transaction: Transaction,
        written_at: datetime | None = None,
        use_event_time: bool = False,
    ) -> "DataPoint":
        """
        일치한 거래 하나를 DataPoint 하나로 변환합니다.

        기본적으로 타임스탬프는 거래의 원래 시각이 아니라 기록 시각(처리 시각)입니다.
        use_event_time=True 이면 거래의 원래 시각을 사용합니다.

        Args:
            transaction: 사기로 판정된 거래
            written_at: 기록 시각 (기본값: 현재 UTC 시각)
            use_event_time: 이벤트 시각 사용 여부

        Returns:
            DataPoint
        """
        if use_event_time:
            timestamp = transaction.timestamp
        else:
            timestamp = written_at or datetime.now(UTC)

        return cls(
            user_id=transaction.user_id,
            amount=transaction.amount,
            timestamp=truncate_to_millis(timestamp.astimezone(UTC)),
        )

    @property
    def tags(self) -> dict[str, str]:
        return {USER_ID_TAG: self.user_id}

    @property
    def fields(self) -> dict[str, int]:
        return {AMOUNT_FIELD: self.amount}

    def timestamp_millis(self) -> int:
        """Unix epoch 기준 밀리초 타임스탬프"""
        return (self.timestamp - _EPOCH) // timedelta(milliseconds=1)
