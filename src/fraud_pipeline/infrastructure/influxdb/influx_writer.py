"""
InfluxDB 데이터 포인트 기록자 구현

이 모듈은 사기로 판정된 거래를 InfluxDB 에 기록하는 기능을 제공합니다.
PointWriter 인터페이스를 구현하며, influxdb-client 라이브러리의 동기 쓰기 API 를 사용합니다.
"""

import asyncio
import logging
import time

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS
from prometheus_client import Counter, Histogram

from fraud_pipeline.domain.exceptions import ConnectionFailedError, WriteError
from fraud_pipeline.domain.models.pipeline_config import PipelineConfig
from fraud_pipeline.domain.models.transaction import DataPoint
from fraud_pipeline.domain.ports.point_writer import PointWriter

logger = logging.getLogger(__name__)

# ===== Prometheus Metrics =====
INFLUX_WRITE_ATTEMPTS = Counter(
    "influx_writer_write_attempts_total",
    "Number of write attempts to InfluxDB",
)

INFLUX_WRITE_RETRIES = Counter(
    "influx_writer_retries_total",
    "Number of write retries after a failed attempt",
)

INFLUX_WRITE_RESULTS = Counter(
    "influx_writer_write_results_total",
    "Write results labeled by result",
    ["result"],
)

INFLUX_WRITE_LATENCY = Histogram(
    "influx_writer_write_latency_seconds",
    "Latency of a write including retries",
)


class InfluxPointWriter(PointWriter):
    """
    InfluxDB Point Writer Adapter

    PointWriter 인터페이스를 구현하여 DataPoint 를 InfluxDB 버킷에 기록합니다.
    클라이언트 하나를 모든 파티션 워커가 공유하며, 각 쓰기는 서로 독립적입니다.

    Features:
        - 블로킹 쓰기 (저장소 확인까지 대기, asyncio.to_thread 로 실행)
        - 시도별 제한 시간
        - 제한된 횟수의 지수 백오프 재시도
        - 리소스 관리 (컨텍스트 매니저 지원)

    Attributes:
        _config: 파이프라인 설정
        _client: InfluxDBClient 인스턴스 (connect() 이후)
        _write_api: 동기 WriteApi (connect() 이후)
    """

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config
        self._client: InfluxDBClient | None = None
        self._write_api = None

    async def connect(self) -> None:
        """
        InfluxDB 클라이언트를 만들고 ping 으로 접속을 확인합니다.

        Raises:
            ConnectionFailedError: 서버에 접속할 수 없는 경우
        """
        if self._client is not None:
            logger.debug("InfluxDB client already connected, skipping connect()")
            return

        logger.info(f"Connecting to InfluxDB {self._config.influx_url}...")
        client = InfluxDBClient(
            url=self._config.influx_url,
            token=self._config.influx_token,
            org=self._config.influx_org,
            timeout=int(self._config.write_timeout_seconds * 1000),
        )

        try:
            healthy = await asyncio.to_thread(client.ping)
        except Exception as e:
            client.close()
            raise ConnectionFailedError(
                f"Failed to reach InfluxDB at {self._config.influx_url}", cause=e
            )

        if not healthy:
            client.close()
            raise ConnectionFailedError(f"InfluxDB at {self._config.influx_url} is not ready")

        self._client = client
        self._write_api = client.write_api(write_options=SYNCHRONOUS)
        logger.info(
            f"Connected to InfluxDB {self._config.influx_url} "
            f"(org={self._config.influx_org}, bucket={self._config.influx_bucket})"
        )

    async def write(self, point: DataPoint) -> None:
        """
        DataPoint 하나를 기록합니다. 실패 시 지수 백오프로 재시도합니다.

        Args:
            point: 기록할 데이터 포인트

        Raises:
            WriteError: 연결되지 않았거나 재시도를 모두 소진한 경우
        """
        if self._write_api is None:
            raise WriteError(
                "InfluxDB writer is not connected",
                user_id=point.user_id,
                amount=point.amount,
            )

        record = self._to_influx_point(point)
        max_attempts = self._config.retry_attempts
        last_error: Exception | None = None
        started = time.perf_counter()

        for attempt in range(1, max_attempts + 1):
            INFLUX_WRITE_ATTEMPTS.inc()
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(
                        self._write_api.write,
                        bucket=self._config.influx_bucket,
                        org=self._config.influx_org,
                        record=record,
                        write_precision=WritePrecision.MS,
                    ),
                    timeout=self._config.write_timeout_seconds,
                )
                INFLUX_WRITE_RESULTS.labels(result="success").inc()
                INFLUX_WRITE_LATENCY.observe(time.perf_counter() - started)
                logger.debug(
                    f"Wrote point userId={point.user_id} amount={point.amount} "
                    f"(attempt {attempt})"
                )
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Write attempt {attempt}/{max_attempts} failed for "
                    f"userId={point.user_id} amount={point.amount}: {e!r}"
                )

            if attempt < max_attempts:
                INFLUX_WRITE_RETRIES.inc()
                await asyncio.sleep(self._calculate_backoff_delay(attempt))

        INFLUX_WRITE_RESULTS.labels(result="failure").inc()
        raise WriteError(
            f"Failed to write point for userId={point.user_id} amount={point.amount} "
            f"after {max_attempts} attempts",
            user_id=point.user_id,
            amount=point.amount,
            attempts=max_attempts,
            cause=last_error,
        )

    async def close(self) -> None:
        """
        쓰기 API 를 flush/종료하고 클라이언트를 닫습니다. 여러 번 호출해도 안전합니다.
        """
        if self._client is None:
            logger.debug("InfluxDB client already closed")
            return

        client, write_api = self._client, self._write_api
        self._client = None
        self._write_api = None

        try:
            if write_api is not None:
                await asyncio.to_thread(write_api.close)
            await asyncio.to_thread(client.close)
            logger.info("InfluxDB client closed successfully")
        except Exception as e:
            logger.error(f"Error while closing InfluxDB client: {e}", exc_info=True)

    # ========== Private Methods ==========

    def _to_influx_point(self, point: DataPoint) -> Point:
        """DataPoint 를 influxdb-client Point 로 변환합니다."""
        influx_point = Point(point.measurement)
        for key, value in point.tags.items():
            influx_point = influx_point.tag(key, value)
        for key, value in point.fields.items():
            influx_point = influx_point.field(key, value)
        return influx_point.time(point.timestamp_millis(), WritePrecision.MS)

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """
        재시도 대기 시간: base * 2^(attempt-1), 최대 retry_backoff_max_seconds
        """
        delay = self._config.retry_backoff_base_seconds * (2 ** (attempt - 1))
        return min(delay, self._config.retry_backoff_max_seconds)

    # ========== Context Manager Support ==========

    async def __aenter__(self) -> "InfluxPointWriter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
