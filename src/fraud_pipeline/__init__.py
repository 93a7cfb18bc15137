"""
사기 거래 필터링 파이프라인

Kafka 로 들어오는 거래 이벤트를 디코딩하고, 사기 판정기로 걸러서
일치하는 거래만 InfluxDB 에 기록하는 스트리밍 파이프라인입니다.
"""

from fraud_pipeline.domain.models.transaction import DataPoint, Transaction
from fraud_pipeline.domain.predicates import FraudPredicate, ThresholdPredicate

__all__ = ["DataPoint", "Transaction", "FraudPredicate", "ThresholdPredicate"]
