"""
파티션 워커

이벤트 소스의 파티션 하나를 도착 순서대로 처리합니다 (디코딩 → 필터 → 저장).
쓰기는 워커 안에서 await 되므로 느린 저장소는 해당 파티션의 소비 속도를 직접 늦춥니다.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from prometheus_client import Counter

from fraud_pipeline.application.services.filter_stage import FilterStage
from fraud_pipeline.domain.exceptions import ConnectionClosedError, DecodeError, WriteError
from fraud_pipeline.domain.models.source_record import SourceRecord
from fraud_pipeline.domain.models.transaction import DataPoint
from fraud_pipeline.domain.ports.event_source import EventSource
from fraud_pipeline.domain.ports.point_writer import PointWriter
from fraud_pipeline.infrastructure.serialization.transaction_codec import TransactionCodec

logger = logging.getLogger(__name__)

# ===== Prometheus Metrics =====
PIPELINE_RECORDS = Counter(
    "fraud_pipeline_records_total",
    "Number of records taken from the event source",
    ["partition"],
)

PIPELINE_DECODE_FAILURES = Counter(
    "fraud_pipeline_decode_failures_total",
    "Number of records dropped because they could not be decoded",
    ["partition"],
)

PIPELINE_FLAGGED = Counter(
    "fraud_pipeline_flagged_total",
    "Number of transactions flagged as fraud",
    ["partition"],
)

PIPELINE_RECORD_FAILURES = Counter(
    "fraud_pipeline_record_failures_total",
    "Number of record-level failures labeled by reason",
    ["partition", "reason"],
)

PIPELINE_PARTITION_HALTS = Counter(
    "fraud_pipeline_partition_halts_total",
    "Number of partition workers halted by a fatal source error",
    ["partition"],
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class WorkerStats:
    """파티션 워커 하나의 처리 통계 (워커 전용, 공유하지 않음)"""

    processed: int = 0
    decode_failures: int = 0
    predicate_failures: int = 0
    flagged: int = 0
    written: int = 0
    write_failures: int = 0
    halted: bool = False
    halt_reason: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class PartitionWorker:
    """
    파티션 하나를 담당하는 논리 워커

    한 번에 레코드 하나만 처리하며, 종료 이벤트가 설정되면 현재 레코드를 끝낸 뒤 종료합니다.
    쓰기 도중에는 취소하지 않습니다 (협력적 취소).

    Attributes:
        _partition: 담당 파티션 번호
        _source: 이벤트 소스 (모든 워커가 공유)
        _codec: 트랜잭션 코덱
        _filter: 이 워커 전용 필터 단계
        _writer: 데이터 포인트 기록자 (모든 워커가 공유)
        _stop_event: 수퍼바이저가 전달한 종료 신호
        _clock: 기록 시각 제공 함수
        _use_event_time: DataPoint 에 거래 시각을 사용할지 여부
        _stats: 처리 통계
    """

    def __init__(
        self,
        partition: int,
        source: EventSource,
        codec: TransactionCodec,
        filter_stage: FilterStage,
        writer: PointWriter,
        stop_event: asyncio.Event,
        clock: Callable[[], datetime] = _utc_now,
        use_event_time: bool = False,
    ) -> None:
        self._partition = partition
        self._source = source
        self._codec = codec
        self._filter = filter_stage
        self._writer = writer
        self._stop_event = stop_event
        self._clock = clock
        self._use_event_time = use_event_time
        self._stats = WorkerStats()
        self._label = str(partition)

    @property
    def partition(self) -> int:
        return self._partition

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    async def run(self) -> None:
        """
        종료 신호가 올 때까지 파티션의 레코드를 순서대로 처리합니다.

        이벤트 소스 재연결이 모두 실패하면(ConnectionClosedError) 이 파티션만 중단하고
        치명적 오류로 보고합니다. 다른 파티션은 계속 처리됩니다.
        """
        logger.info(f"Partition worker {self._partition} started")

        try:
            while not self._stop_event.is_set():
                try:
                    record = await self._source.read(self._partition)
                except ConnectionClosedError as e:
                    self._stats.halted = True
                    self._stats.halt_reason = str(e)
                    PIPELINE_PARTITION_HALTS.labels(partition=self._label).inc()
                    logger.critical(
                        f"Partition {self._partition} halted: event source unavailable: {e}"
                    )
                    return

                if record is None:
                    continue

                if self._stop_event.is_set():
                    # 종료 신호 이후에는 새 레코드를 받지 않습니다. 오프셋을 저장하지 않으므로 재전달됩니다.
                    logger.debug(
                        f"Shutdown requested, leaving offset {record.offset} "
                        f"of partition {self._partition} uncommitted"
                    )
                    break

                await self.process_record(record)
        finally:
            logger.info(
                f"Partition worker {self._partition} stopped "
                f"(processed={self._stats.processed}, written={self._stats.written})"
            )

    async def process_record(self, record: SourceRecord) -> None:
        """
        레코드 하나를 디코딩 → 필터 → 저장 순서로 처리하고 오프셋을 저장합니다.

        디코딩 실패와 쓰기 실패는 레코드 단위로 기록한 뒤 다음 레코드로 넘어갑니다.

        Args:
            record: 이벤트 소스에서 읽은 레코드
        """
        self._stats.processed += 1
        PIPELINE_RECORDS.labels(partition=self._label).inc()

        try:
            transaction = self._codec.decode(record.value)
        except DecodeError as e:
            self._stats.decode_failures += 1
            PIPELINE_DECODE_FAILURES.labels(partition=self._label).inc()
            PIPELINE_RECORD_FAILURES.labels(partition=self._label, reason="decode").inc()
            logger.warning(
                f"Dropped record partition={record.partition} offset={record.offset}: {e}"
            )
            await self._source.acknowledge(record)
            return

        failures_before = self._filter.predicate_failures
        matched = self._filter.apply(transaction)
        if self._filter.predicate_failures != failures_before:
            self._stats.predicate_failures += 1
            PIPELINE_RECORD_FAILURES.labels(partition=self._label, reason="predicate").inc()

        if matched is None:
            await self._source.acknowledge(record)
            return

        self._stats.flagged += 1
        PIPELINE_FLAGGED.labels(partition=self._label).inc()

        point = DataPoint.from_transaction(
            matched, written_at=self._clock(), use_event_time=self._use_event_time
        )

        try:
            await self._writer.write(point)
            self._stats.written += 1
        except WriteError as e:
            self._stats.write_failures += 1
            PIPELINE_RECORD_FAILURES.labels(partition=self._label, reason="write").inc()
            logger.error(
                f"Failed to persist fraud transaction userId={matched.user_id} "
                f"amount={matched.amount} timestamp={matched.timestamp.isoformat()} "
                f"(partition={record.partition}, offset={record.offset}); "
                f"manual replay required: {e}"
            )

        await self._source.acknowledge(record)
