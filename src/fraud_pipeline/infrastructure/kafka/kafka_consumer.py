"""
Kafka 이벤트 소스 구현

이 모듈은 거래 이벤트 토픽을 파티션 단위로 소비하는 기능을 제공합니다.
EventSource 인터페이스를 구현하며, confluent-kafka 라이브러리를 사용합니다.

파티션마다 전용 Consumer 를 하나씩 두어(manual assign) 파티션 워커가 서로 독립적으로
poll 합니다. 워커가 쓰기에서 막히면 그 파티션의 poll 만 멈추므로 자연스럽게 역압
(backpressure)이 걸리고, 내부 큐가 무한히 쌓이지 않습니다.
"""

import asyncio
import logging
from typing import Any, Dict

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition
from prometheus_client import Counter

from fraud_pipeline.domain.exceptions import ConnectionClosedError, ConnectionFailedError
from fraud_pipeline.domain.models.pipeline_config import PipelineConfig
from fraud_pipeline.domain.models.source_record import SourceRecord
from fraud_pipeline.domain.ports.event_source import EventSource

logger = logging.getLogger(__name__)

# ===== Prometheus Metrics =====
KAFKA_SOURCE_RECORDS = Counter(
    "kafka_source_records_total",
    "Number of records polled from Kafka",
    ["partition"],
)

KAFKA_SOURCE_ERRORS = Counter(
    "kafka_source_errors_total",
    "Number of consumer errors labeled by partition/error_code",
    ["partition", "error_code"],
)

KAFKA_SOURCE_RECONNECTS = Counter(
    "kafka_source_reconnects_total",
    "Number of partition consumer reconnection attempts",
    ["partition"],
)

METADATA_TIMEOUT_SECONDS = 10.0


class KafkaEventSource(EventSource):
    """
    Kafka Event Source Adapter

    EventSource 인터페이스를 구현하여 토픽의 각 파티션을 순서대로 읽습니다.

    Features:
        - 파티션별 전용 Consumer (파티션 내 순서 보장, 파티션 간 독립)
        - 처리 완료 후 오프셋 저장 (at-least-once)
        - 파티션 단위 재연결 및 지수 백오프

    Attributes:
        _config: 파이프라인 설정
        _consumer_config: confluent-kafka Consumer 설정
        _poll_timeout: poll 1회 최대 대기 시간 (초)
        _consumers: 파티션 번호 -> Consumer
        _partitions: 연결 시 조회한 파티션 목록
        _reconnect_attempts: 파티션 번호 -> 연속 재연결 시도 횟수
    """

    def __init__(
        self,
        config: PipelineConfig,
        poll_timeout: float = 1.0,
        overrides: Dict[str, Any] | None = None,
    ) -> None:
        """
        KafkaEventSource를 초기화합니다.

        Args:
            config: 파이프라인 설정 (브로커 주소, 토픽, 그룹, 재연결 정책)
            poll_timeout: poll 1회 최대 대기 시간 (초)
            overrides: confluent-kafka Consumer 설정 덮어쓰기
        """
        self._config = config
        self._consumer_config: Dict[str, Any] = {
            **config.kafka_consumer_config(),
            **(overrides or {}),
        }
        self._consumer_config["error_cb"] = self._error_callback
        self._poll_timeout = poll_timeout
        self._consumers: Dict[int, Consumer] = {}
        self._partitions: list[int] = []
        self._reconnect_attempts: Dict[int, int] = {}
        self._connected = False

    @property
    def topic(self) -> str:
        return self._config.topic

    async def connect(self) -> None:
        """
        토픽 메타데이터를 조회하고 파티션마다 Consumer 를 할당합니다.

        Raises:
            ConnectionFailedError: 브로커 접속 또는 토픽 조회에 실패한 경우
        """
        if self._connected:
            logger.debug("Already connected, skipping connect()")
            return

        logger.info(
            f"Connecting to Kafka {self._config.bootstrap_servers} (topic={self.topic})..."
        )

        try:
            self._partitions = await asyncio.to_thread(self._fetch_partitions)
            for partition in self._partitions:
                self._consumers[partition] = await asyncio.to_thread(
                    self._create_partition_consumer, partition
                )
                self._reconnect_attempts[partition] = 0
        except Exception as e:
            logger.error(f"Failed to connect to Kafka: {e}", exc_info=True)
            await self._close_consumers()
            raise ConnectionFailedError(
                f"Failed to connect to Kafka {self._config.bootstrap_servers} "
                f"(topic={self.topic})",
                cause=e,
            )

        self._connected = True
        logger.info(f"Assigned {len(self._partitions)} partitions of topic {self.topic}")

    async def disconnect(self) -> None:
        """
        모든 파티션 Consumer 를 닫습니다. 닫을 때 저장된 오프셋이 커밋됩니다.
        """
        if not self._connected and not self._consumers:
            logger.debug("Already disconnected, skipping disconnect()")
            return

        logger.info(f"Disconnecting from Kafka topic {self.topic}...")
        await self._close_consumers()
        self._connected = False
        logger.info(f"Disconnected from Kafka topic {self.topic}")

    def get_partitions(self) -> list[int]:
        return list(self._partitions)

    async def read(self, partition: int) -> SourceRecord | None:
        """
        파티션에서 레코드 하나를 poll 합니다.

        Args:
            partition: 파티션 번호

        Returns:
            SourceRecord, 또는 poll_timeout 안에 레코드가 없으면 None

        Raises:
            ConnectionClosedError: 재연결을 모두 소진한 경우
        """
        consumer = self._consumers.get(partition)
        if consumer is None:
            raise ConnectionClosedError(f"Partition {partition} of {self.topic} is not assigned")

        try:
            message = await asyncio.to_thread(consumer.poll, self._poll_timeout)
        except (KafkaException, RuntimeError) as e:
            logger.warning(f"Poll failed on partition {partition}: {e}")
            await self._reconnect(partition, e)
            return None

        if message is None:
            return None

        error = message.error()
        if error is not None:
            if error.code() == KafkaError._PARTITION_EOF:
                return None

            KAFKA_SOURCE_ERRORS.labels(
                partition=str(partition), error_code=str(error.code())
            ).inc()
            if error.fatal():
                logger.error(f"Fatal consumer error on partition {partition}: {error.str()}")
                await self._reconnect(partition, KafkaException(error))
            else:
                logger.warning(f"Consumer error on partition {partition}: {error.str()}")
            return None

        self._reconnect_attempts[partition] = 0
        KAFKA_SOURCE_RECORDS.labels(partition=str(partition)).inc()

        return SourceRecord(
            partition=message.partition(),
            offset=message.offset(),
            key=message.key(),
            value=message.value(),
            handle=message,
        )

    async def acknowledge(self, record: SourceRecord) -> None:
        """
        처리가 끝난 레코드의 오프셋을 저장합니다. 실제 커밋은 자동 커밋 주기에 이뤄집니다.

        저장에 실패하면 경고만 남깁니다. 해당 레코드는 재시작 시 다시 전달될 수 있습니다.
        """
        consumer = self._consumers.get(record.partition)
        if consumer is None or record.handle is None:
            return

        try:
            consumer.store_offsets(message=record.handle)
        except KafkaException as e:
            logger.warning(
                f"Failed to store offset {record.offset} for partition {record.partition}: {e}"
            )

    # ========== Private Methods ==========

    def _fetch_partitions(self) -> list[int]:
        """
        토픽의 파티션 목록을 조회합니다 (blocking).

        Raises:
            KafkaException: 메타데이터 조회 실패
            ConnectionFailedError: 토픽이 없거나 에러 상태인 경우
        """
        consumer = Consumer(self._consumer_config)
        try:
            metadata = consumer.list_topics(self.topic, timeout=METADATA_TIMEOUT_SECONDS)
            topic_metadata = metadata.topics.get(self.topic)
            if topic_metadata is None or topic_metadata.error is not None:
                error = topic_metadata.error if topic_metadata is not None else "not found"
                raise ConnectionFailedError(f"Topic {self.topic} is unavailable: {error}")
            if not topic_metadata.partitions:
                raise ConnectionFailedError(f"Topic {self.topic} has no partitions")
            return sorted(topic_metadata.partitions)
        finally:
            consumer.close()

    def _create_partition_consumer(self, partition: int) -> Consumer:
        """
        파티션 하나를 할당받은 Consumer 를 만들고 브로커 접속을 확인합니다 (blocking).
        """
        consumer = Consumer(self._consumer_config)
        try:
            consumer.list_topics(self.topic, timeout=METADATA_TIMEOUT_SECONDS)
            consumer.assign([TopicPartition(self.topic, partition)])
        except Exception:
            consumer.close()
            raise
        logger.debug(f"Assigned consumer to {self.topic}[{partition}]")
        return consumer

    async def _reconnect(self, partition: int, cause: Exception) -> None:
        """
        파티션 Consumer 를 다시 만듭니다.

        Raises:
            ConnectionClosedError: 최대 재연결 시도 횟수를 초과한 경우
        """
        old_consumer = self._consumers.pop(partition, None)
        if old_consumer is not None:
            try:
                await asyncio.to_thread(old_consumer.close)
            except Exception as e:
                logger.warning(f"Error closing consumer for partition {partition}: {e}")

        while self._should_attempt_reconnect(partition):
            self._reconnect_attempts[partition] = self._reconnect_attempts.get(partition, 0) + 1
            attempt = self._reconnect_attempts[partition]
            delay = self._calculate_backoff_delay(attempt)
            KAFKA_SOURCE_RECONNECTS.labels(partition=str(partition)).inc()

            logger.info(
                f"Reconnection attempt {attempt}/{self._config.source_max_reconnect_attempts} "
                f"for partition {partition} in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)

            try:
                self._consumers[partition] = await asyncio.to_thread(
                    self._create_partition_consumer, partition
                )
                # 성공 시 재시도 카운터 리셋
                self._reconnect_attempts[partition] = 0
                logger.info(
                    f"Reconnected consumer for partition {partition} after {attempt} attempts"
                )
                return
            except Exception as e:
                logger.warning(f"Reconnection attempt {attempt} for partition {partition} failed: {e}")

        raise ConnectionClosedError(
            f"Failed to reconnect partition {partition} of {self.topic} after "
            f"{self._reconnect_attempts.get(partition, 0)} attempts",
            cause=cause,
        )

    def _should_attempt_reconnect(self, partition: int) -> bool:
        max_attempts = self._config.source_max_reconnect_attempts
        # 0이면 무한 재시도
        if max_attempts == 0:
            return True
        return self._reconnect_attempts.get(partition, 0) < max_attempts

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """
        지수 백오프 지연 시간 (1, 2, 4, ... 초, 최대 source_backoff_max_seconds)
        """
        return float(min(2 ** (attempt - 1), self._config.source_backoff_max_seconds))

    async def _close_consumers(self) -> None:
        consumers = list(self._consumers.items())
        self._consumers.clear()
        for partition, consumer in consumers:
            try:
                await asyncio.to_thread(consumer.close)
            except Exception as e:
                logger.warning(f"Error closing consumer for partition {partition}: {e}")

    def _error_callback(self, err: Any) -> None:
        logger.error(f"Kafka error: {err.str()} (error code: {err.code()})")
