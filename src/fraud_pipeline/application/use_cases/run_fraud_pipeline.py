"""
사기 거래 필터링 파이프라인 실행 유즈케이스

Kafka 거래 이벤트를 소비해 사기로 판정된 거래를 InfluxDB 에 기록하는 전체 파이프라인을 구성하고 실행합니다.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from prometheus_client import start_http_server

from fraud_pipeline.application.services.pipeline_supervisor import PipelineSupervisor
from fraud_pipeline.domain.exceptions import ConnectionFailedError, InvalidConfigurationError
from fraud_pipeline.domain.models.pipeline_config import PipelineConfig
from fraud_pipeline.domain.predicates import create_predicate
from fraud_pipeline.infrastructure.config.env_config import load_pipeline_config
from fraud_pipeline.infrastructure.influxdb.influx_writer import InfluxPointWriter
from fraud_pipeline.infrastructure.kafka.kafka_consumer import KafkaEventSource

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_supervisor(config: PipelineConfig) -> PipelineSupervisor:
    """
    설정으로부터 의존성을 생성하고 수퍼바이저에 주입합니다.

    Args:
        config: 검증된 파이프라인 설정

    Returns:
        아직 시작되지 않은 PipelineSupervisor

    Raises:
        InvalidConfigurationError: 알 수 없는 판정기 이름인 경우
    """
    predicate = create_predicate(config.predicate_name, config.fraud_threshold)
    source = KafkaEventSource(config)
    writer = InfluxPointWriter(config)

    return PipelineSupervisor(
        source=source,
        writer=writer,
        predicate=predicate,
        shutdown_grace_seconds=config.shutdown_grace_seconds,
        use_event_time=config.use_event_time,
    )


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """
    SIGINT/SIGTERM 수신 시 종료 이벤트만 설정합니다. 실제 종료 순서는 수퍼바이저가 담당합니다.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler 를 지원하지 않는 플랫폼 (Windows 등)
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")


async def run_fraud_pipeline(
    config: PipelineConfig,
    shutdown_event: Optional[asyncio.Event] = None,
    supervisor: Optional[PipelineSupervisor] = None,
) -> int:
    """
    사기 거래 필터링 파이프라인 유즈케이스

    이 함수는 종료 신호가 올 때까지 실행됩니다.

    Args:
        config: 파이프라인 설정
        shutdown_event: 종료 신호 (기본값: SIGINT/SIGTERM 에 연결된 새 이벤트)
        supervisor: 미리 구성된 수퍼바이저 (기본값: 설정으로 생성)

    Returns:
        프로세스 종료 코드 (0: 정상 종료, 1: 시작 실패 또는 모든 파티션 중단)
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()
        install_signal_handlers(shutdown_event)

    if supervisor is None:
        supervisor = build_supervisor(config)

    logger.info(f"Starting fraud pipeline: {config}")

    try:
        clean = await supervisor.run(shutdown_event)
    except ConnectionFailedError as e:
        logger.error(f"Fraud pipeline failed to start: {e}")
        return EXIT_FAILURE

    status = supervisor.get_status()
    logger.info(f"Fraud pipeline finished: {status['totals']}")
    return EXIT_OK if clean else EXIT_FAILURE


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )


def main() -> None:
    """프로세스 진입점 (console script: fraud-pipeline)"""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_pipeline_config()
        supervisor = build_supervisor(config)
    except InvalidConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(EXIT_FAILURE)

    if config.metrics_port is not None:
        start_http_server(config.metrics_port)
        logger.info(f"Prometheus metrics exposed on :{config.metrics_port}")

    sys.exit(asyncio.run(run_fraud_pipeline(config, supervisor=supervisor)))


if __name__ == "__main__":
    main()
