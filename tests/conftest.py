"""
공용 테스트 픽스처

외부 시스템(Kafka, InfluxDB) 없이 파이프라인을 검증하기 위한
인메모리 이벤트 소스와 기록용 writer 를 제공합니다.
"""

import asyncio
from datetime import UTC, datetime

import pytest

from fraud_pipeline.domain.exceptions import ConnectionClosedError, ConnectionFailedError, WriteError
from fraud_pipeline.domain.models.pipeline_config import PipelineConfig
from fraud_pipeline.domain.models.source_record import SourceRecord
from fraud_pipeline.domain.models.transaction import DataPoint
from fraud_pipeline.domain.ports.event_source import EventSource
from fraud_pipeline.domain.ports.point_writer import PointWriter

FIXED_NOW = datetime(2025, 1, 8, 12, 30, 0, 123456, tzinfo=UTC)


class InMemoryEventSource(EventSource):
    """파티션별 페이로드 목록을 순서대로 돌려주는 이벤트 소스"""

    def __init__(
        self,
        partitions: dict[int, list],
        fail_connect: bool = False,
        closed_partitions: set[int] | None = None,
        idle_sleep: float = 0.005,
    ) -> None:
        self._payloads = {p: list(values) for p, values in partitions.items()}
        self._positions = {p: 0 for p in partitions}
        self._fail_connect = fail_connect
        self._closed_partitions = closed_partitions or set()
        self._idle_sleep = idle_sleep
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.acknowledged: list[SourceRecord] = []
        self.events: list[str] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        self.events.append("source.connect")
        if self._fail_connect:
            raise ConnectionFailedError("broker unreachable")
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.events.append("source.disconnect")
        self.connected = False

    def get_partitions(self) -> list[int]:
        return sorted(self._payloads)

    async def read(self, partition: int) -> SourceRecord | None:
        if partition in self._closed_partitions:
            raise ConnectionClosedError(f"partition {partition} lost")

        position = self._positions[partition]
        if position >= len(self._payloads[partition]):
            await asyncio.sleep(self._idle_sleep)
            return None

        self._positions[partition] = position + 1
        await asyncio.sleep(0)
        return SourceRecord(
            partition=partition, offset=position, value=self._payloads[partition][position]
        )

    async def acknowledge(self, record: SourceRecord) -> None:
        self.acknowledged.append(record)

    def drained(self) -> bool:
        return all(self._positions[p] >= len(v) for p, v in self._payloads.items())


class RecordingPointWriter(PointWriter):
    """기록된 DataPoint 를 순서대로 보관하는 writer"""

    def __init__(
        self,
        fail_connect: bool = False,
        failing_user_ids: set[str] | None = None,
        write_delay: float = 0.0,
        close_delay: float = 0.0,
    ) -> None:
        self._fail_connect = fail_connect
        self._failing_user_ids = failing_user_ids or set()
        self._write_delay = write_delay
        self._close_delay = close_delay
        self.connected = False
        self.close_calls = 0
        self.points: list[DataPoint] = []
        self.events: list[str] = []

    async def connect(self) -> None:
        self.events.append("writer.connect")
        if self._fail_connect:
            raise ConnectionFailedError("influx unreachable")
        self.connected = True

    async def write(self, point: DataPoint) -> None:
        if self._write_delay:
            await asyncio.sleep(self._write_delay)
        if point.user_id in self._failing_user_ids:
            raise WriteError(
                "store rejected point", user_id=point.user_id, amount=point.amount, attempts=3
            )
        self.points.append(point)

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("writer.close")
        if self._close_delay:
            await asyncio.sleep(self._close_delay)
        self.connected = False


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """파이프라인 설정 픽스처"""
    return PipelineConfig(
        bootstrap_servers="localhost:9092",
        topic="transactions",
        group_id="fraud-pipeline-test",
        influx_url="http://localhost:8086",
        influx_token="test-token",
        influx_org="fraud",
        influx_bucket="fraud_transactions",
        retry_attempts=3,
        retry_backoff_base_seconds=0.0,
        retry_backoff_max_seconds=0.0,
        write_timeout_seconds=1.0,
        source_max_reconnect_attempts=2,
        source_backoff_max_seconds=1,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def fixed_clock():
    """고정 시각을 반환하는 clock 픽스처"""
    return lambda: FIXED_NOW


@pytest.fixture
def event_source_factory():
    """InMemoryEventSource 생성 팩토리"""
    return InMemoryEventSource


@pytest.fixture
def point_writer_factory():
    """RecordingPointWriter 생성 팩토리"""
    return RecordingPointWriter
