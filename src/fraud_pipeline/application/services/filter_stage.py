"""
필터 단계

디코딩된 거래에 사기 판정기를 적용해 일치하는 거래만 다음 단계로 넘깁니다.
"""

import logging

from prometheus_client import Counter

from fraud_pipeline.domain.exceptions import PredicateError
from fraud_pipeline.domain.models.transaction import Transaction
from fraud_pipeline.domain.predicates import FraudPredicate

logger = logging.getLogger(__name__)

PREDICATE_FAILURES = Counter(
    "fraud_pipeline_predicate_failures_total",
    "Number of predicate evaluations that raised (treated as non-fraud)",
)


class FilterStage:
    """
    사기 거래 필터

    파티션 워커 안에서 동기적으로 실행되며, 현재 레코드 외에는 아무것도 버퍼링하지 않습니다.
    판정기가 예외를 던지면 PredicateError 로 기록하고 사기가 아닌 것으로 간주합니다
    (안전한 기본값: 저장하지 않음).

    Attributes:
        _predicate: 주입된 사기 판정기
        predicate_failures: 이 필터에서 판정기가 실패한 횟수
    """

    def __init__(self, predicate: FraudPredicate) -> None:
        self._predicate = predicate
        self.predicate_failures = 0

    @property
    def predicate(self) -> FraudPredicate:
        return self._predicate

    def apply(self, transaction: Transaction) -> Transaction | None:
        """
        판정 결과가 True 인 거래만 그대로 반환합니다.

        Args:
            transaction: 디코딩된 거래

        Returns:
            사기로 판정된 경우 같은 Transaction, 아니면 None
        """
        try:
            verdict = self._predicate.evaluate(transaction)
        except Exception as e:
            error = PredicateError(
                f"Predicate {self._predicate!r} failed for userId={transaction.user_id} "
                f"amount={transaction.amount}",
                cause=e,
            )
            self.predicate_failures += 1
            PREDICATE_FAILURES.inc()
            logger.error(f"{error}; treating as non-fraud")
            return None

        return transaction if verdict else None
