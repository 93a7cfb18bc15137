"""
파이프라인 설정 모델

이벤트 소스(Kafka), 시계열 저장소(InfluxDB), 사기 판정, 재시도 및 종료 정책에
필요한 설정을 담는 불변 도메인 모델입니다.
"""

import math
from dataclasses import dataclass
from urllib.parse import urlparse

from fraud_pipeline.domain.exceptions import InvalidConfigurationError


@dataclass(frozen=True)
class PipelineConfig:
    """
    파이프라인 실행을 위한 설정을 담는 불변 객체입니다.

    Attributes:
        bootstrap_servers: Kafka 브로커 주소 (예: "localhost:9092").
        topic: 거래 이벤트 토픽 이름.
        group_id: 오프셋 커밋에 사용하는 컨슈머 그룹 ID.
        influx_url: InfluxDB 엔드포인트 URL.
        influx_token: InfluxDB 인증 토큰.
        influx_org: InfluxDB 조직.
        influx_bucket: 사기 거래를 기록할 버킷.
        predicate_name: 사기 판정기 이름 (현재 "threshold").
        fraud_threshold: 이 금액을 초과하면 사기로 판정.
        retry_attempts: 쓰기 시도 최대 횟수 (첫 시도 포함).
        retry_backoff_base_seconds: 지수 백오프 시작 대기 시간 (초).
        retry_backoff_max_seconds: 지수 백오프 최대 대기 시간 (초).
        write_timeout_seconds: 쓰기 1회 시도의 제한 시간 (초).
        source_max_reconnect_attempts: 이벤트 소스 재연결 최대 횟수. 0이면 무한 재시도.
        source_backoff_max_seconds: 이벤트 소스 재연결 백오프 최대 대기 시간 (초).
        shutdown_grace_seconds: 종료 시 진행 중인 레코드를 기다리는 유예 시간 (초).
        use_event_time: True 이면 DataPoint 타임스탬프로 거래 시각을 사용.
        metrics_port: Prometheus 메트릭 HTTP 포트. None 이면 비활성화.
    """

    bootstrap_servers: str
    topic: str
    group_id: str
    influx_url: str
    influx_token: str
    influx_org: str
    influx_bucket: str
    predicate_name: str = "threshold"
    fraud_threshold: int = 10000
    retry_attempts: int = 3
    retry_backoff_base_seconds: float = 0.5
    retry_backoff_max_seconds: float = 8.0
    write_timeout_seconds: float = 10.0
    source_max_reconnect_attempts: int = 10
    source_backoff_max_seconds: int = 60
    shutdown_grace_seconds: float = 10.0
    use_event_time: bool = False
    metrics_port: int | None = None

    def __post_init__(self) -> None:
        """객체 생성 후 추가 검증을 수행합니다."""
        self.validate()

    def validate(self) -> None:
        """
        설정 값의 유효성을 검사합니다.

        Raises:
            InvalidConfigurationError: 설정이 유효하지 않을 경우 발생합니다.
        """
        errors = []

        for name in (
            "retry_backoff_base_seconds",
            "retry_backoff_max_seconds",
            "write_timeout_seconds",
            "shutdown_grace_seconds",
        ):
            if not math.isfinite(getattr(self, name)):
                errors.append(f"{name} must be a finite number.")

        if not self.bootstrap_servers:
            errors.append("bootstrap_servers must be a non-empty string.")

        if not self.topic:
            errors.append("topic must be a non-empty string.")

        if not self.group_id:
            errors.append("group_id must be a non-empty string.")

        if not self._is_valid_url(self.influx_url):
            errors.append(f"Invalid influx_url format: {self.influx_url}")

        if not self.influx_token:
            errors.append("influx_token must be provided.")

        if not self.influx_org:
            errors.append("influx_org must be a non-empty string.")

        if not self.influx_bucket:
            errors.append("influx_bucket must be a non-empty string.")

        if self.fraud_threshold < 0:
            errors.append("fraud_threshold cannot be negative.")

        if self.retry_attempts < 1:
            errors.append("retry_attempts must be at least 1.")

        if self.retry_backoff_base_seconds < 0:
            errors.append("retry_backoff_base_seconds cannot be negative.")

        if self.retry_backoff_max_seconds < self.retry_backoff_base_seconds:
            errors.append("retry_backoff_max_seconds must be >= retry_backoff_base_seconds.")

        if self.write_timeout_seconds <= 0:
            errors.append("write_timeout_seconds must be positive.")

        if self.source_max_reconnect_attempts < 0:
            errors.append("source_max_reconnect_attempts cannot be negative.")

        if self.source_backoff_max_seconds < 1:
            errors.append("source_backoff_max_seconds must be at least 1 second.")

        if self.shutdown_grace_seconds <= 0:
            errors.append("shutdown_grace_seconds must be positive.")

        if self.metrics_port is not None and not 0 < self.metrics_port < 65536:
            errors.append(f"metrics_port out of range: {self.metrics_port}")

        if errors:
            raise InvalidConfigurationError(
                f"PipelineConfig validation failed for topic {self.topic}: "
                f"{'; '.join(errors)}"
            )

    def _is_valid_url(self, url: str) -> bool:
        """주어진 문자열이 유효한 URL 형식인지 검사합니다."""
        try:
            result = urlparse(url)
            return all([result.scheme, result.netloc])
        except ValueError:
            return False

    def kafka_consumer_config(self) -> dict[str, object]:
        """
        confluent-kafka Consumer 설정 딕셔너리를 만듭니다.

        오프셋은 레코드 처리가 끝난 뒤에만 저장(store)되고 자동 커밋됩니다.
        이것이 at-least-once 전달을 보장합니다.
        """
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "group.id": self.group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": True,
            "enable.auto.offset.store": False,
        }

    def __str__(self) -> str:
        """토큰을 노출하지 않는 문자열 표현을 반환합니다."""
        return (
            f"PipelineConfig(topic={self.topic}, "
            f"bootstrap_servers={self.bootstrap_servers}, "
            f"influx_url={self.influx_url}, bucket={self.influx_bucket}, "
            f"predicate={self.predicate_name}, threshold={self.fraud_threshold})"
        )
