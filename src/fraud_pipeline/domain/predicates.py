"""
사기 판정기 (Fraud Predicate)

거래 하나를 받아 사기 여부(verdict)를 반환하는 전략 객체를 정의합니다.
판정기는 I/O 없이 동작해야 하며, 저장소 연결 없이 테스트할 수 있습니다.
"""

from abc import ABC, abstractmethod

from fraud_pipeline.domain.exceptions import InvalidConfigurationError
from fraud_pipeline.domain.models.transaction import Transaction

DEFAULT_FRAUD_THRESHOLD = 10000


class FraudPredicate(ABC):
    """
    사기 판정기 인터페이스

    필터 단계에 생성 시점에 주입되며, 다른 컴포넌트를 바꾸지 않고 교체할 수 있습니다.
    구현체는 스트림 양과 무관하게 레코드당 제한된 시간 안에 판정해야 합니다.
    상태를 가진 구현체(윈도우 기반 규칙 등)도 같은 인터페이스로 주입할 수 있습니다.
    """

    @abstractmethod
    def evaluate(self, transaction: Transaction) -> bool:
        """
        거래의 사기 여부를 판정합니다.

        Args:
            transaction: 디코딩된 거래

        Returns:
            사기로 판정되면 True
        """
        pass


class ThresholdPredicate(FraudPredicate):
    """
    금액 임계값 판정기

    amount > threshold 이면 사기로 판정합니다. 상태가 없는 레코드 단위 규칙입니다.

    Examples:
        >>> from datetime import UTC, datetime
        >>> predicate = ThresholdPredicate(threshold=10000)
        >>> predicate.evaluate(Transaction("54321", 15000, datetime.now(UTC)))
        True
        >>> predicate.evaluate(Transaction("11111", 10000, datetime.now(UTC)))
        False
    """

    def __init__(self, threshold: int = DEFAULT_FRAUD_THRESHOLD) -> None:
        if threshold < 0:
            raise InvalidConfigurationError(f"threshold cannot be negative: {threshold}")
        self._threshold = threshold

    @property
    def threshold(self) -> int:
        return self._threshold

    def evaluate(self, transaction: Transaction) -> bool:
        return transaction.amount > self._threshold

    def __repr__(self) -> str:
        return f"ThresholdPredicate(threshold={self._threshold})"


_PREDICATES = {
    "threshold": ThresholdPredicate,
}


def create_predicate(name: str, threshold: int = DEFAULT_FRAUD_THRESHOLD) -> FraudPredicate:
    """
    설정 이름으로 판정기를 생성합니다.

    Args:
        name: 판정기 이름 (예: "threshold")
        threshold: 임계값 판정기의 기준 금액

    Returns:
        FraudPredicate 구현체

    Raises:
        InvalidConfigurationError: 알 수 없는 판정기 이름인 경우
    """
    predicate_cls = _PREDICATES.get(name.strip().lower())
    if predicate_cls is None:
        raise InvalidConfigurationError(
            f"Unknown fraud predicate: '{name}' "
            f"(available: {', '.join(sorted(_PREDICATES))})"
        )
    return predicate_cls(threshold=threshold)
