"""
환경 변수 기반 설정 팩토리

컨테이너 환경에 맞게 환경 변수에서 PipelineConfig 를 생성합니다.
값이 없으면 로컬 개발용 기본값(localhost Kafka/InfluxDB)을 사용합니다.
"""

import os
from collections.abc import Mapping

from fraud_pipeline.domain.exceptions import InvalidConfigurationError
from fraud_pipeline.domain.models.pipeline_config import PipelineConfig
from fraud_pipeline.domain.predicates import DEFAULT_FRAUD_THRESHOLD

DEFAULT_BOOTSTRAP_SERVERS = "localhost:9092"
DEFAULT_TOPIC = "transactions"
DEFAULT_GROUP_ID = "fraud-pipeline"
DEFAULT_INFLUX_URL = "http://localhost:8086"
DEFAULT_INFLUX_ORG = "fraud"
DEFAULT_INFLUX_BUCKET = "fraud_transactions"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidConfigurationError(f"{name} must be an integer, got {raw!r}", cause=e)


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise InvalidConfigurationError(f"{name} must be a number, got {raw!r}", cause=e)


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidConfigurationError(f"{name} must be a boolean, got {raw!r}")


def load_pipeline_config(environ: Mapping[str, str] | None = None) -> PipelineConfig:
    """
    환경 변수에서 PipelineConfig 를 생성합니다.

    Args:
        environ: 환경 변수 매핑 (기본값: os.environ)

    Returns:
        검증된 PipelineConfig

    Raises:
        InvalidConfigurationError: 값 형식이 잘못되었거나 설정 검증에 실패한 경우

    Examples:
        >>> config = load_pipeline_config({"INFLUXDB_TOKEN": "secret"})
        >>> config.fraud_threshold
        10000
    """
    env = os.environ if environ is None else environ

    metrics_port_raw = env.get("METRICS_PORT")
    metrics_port = (
        _get_int(env, "METRICS_PORT", 0) if metrics_port_raw and metrics_port_raw.strip() else None
    )

    return PipelineConfig(
        bootstrap_servers=env.get("KAFKA_BOOTSTRAP_SERVERS", DEFAULT_BOOTSTRAP_SERVERS),
        topic=env.get("KAFKA_TOPIC", DEFAULT_TOPIC),
        group_id=env.get("KAFKA_GROUP_ID", DEFAULT_GROUP_ID),
        influx_url=env.get("INFLUXDB_URL", DEFAULT_INFLUX_URL),
        influx_token=env.get("INFLUXDB_TOKEN", ""),
        influx_org=env.get("INFLUXDB_ORG", DEFAULT_INFLUX_ORG),
        influx_bucket=env.get("INFLUXDB_BUCKET", DEFAULT_INFLUX_BUCKET),
        predicate_name=env.get("FRAUD_PREDICATE", "threshold"),
        fraud_threshold=_get_int(env, "FRAUD_THRESHOLD", DEFAULT_FRAUD_THRESHOLD),
        retry_attempts=_get_int(env, "WRITE_RETRY_ATTEMPTS", 3),
        retry_backoff_base_seconds=_get_float(env, "WRITE_RETRY_BACKOFF_BASE_SECONDS", 0.5),
        retry_backoff_max_seconds=_get_float(env, "WRITE_RETRY_BACKOFF_MAX_SECONDS", 8.0),
        write_timeout_seconds=_get_float(env, "WRITE_TIMEOUT_SECONDS", 10.0),
        source_max_reconnect_attempts=_get_int(env, "SOURCE_MAX_RECONNECT_ATTEMPTS", 10),
        source_backoff_max_seconds=_get_int(env, "SOURCE_BACKOFF_MAX_SECONDS", 60),
        shutdown_grace_seconds=_get_float(env, "SHUTDOWN_GRACE_SECONDS", 10.0),
        use_event_time=_get_bool(env, "USE_EVENT_TIME", False),
        metrics_port=metrics_port,
    )
