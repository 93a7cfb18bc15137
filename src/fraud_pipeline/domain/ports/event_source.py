"""
이벤트 소스 포트 인터페이스

순서가 보장되는 파티션 스트림(Kafka 등)에서 거래 이벤트를 읽어 오는 추상 인터페이스입니다.
Domain/Application Layer는 이 인터페이스에만 의존하며, 실제 구현은 Infrastructure Layer에서 제공됩니다.
"""

from abc import ABC, abstractmethod

from fraud_pipeline.domain.models.source_record import SourceRecord


class EventSource(ABC):
    """
    이벤트 소스 포트 인터페이스

    파티션마다 독립적으로 레코드를 읽을 수 있어야 하며,
    한 파티션 안에서는 도착 순서대로 레코드를 반환해야 합니다.

    Implementation Requirements:
        1. connect()와 disconnect()는 멱등(idempotent)해야 함
        2. read()는 poll_timeout 동안 레코드가 없으면 None을 반환해야 함
           (협력적 취소를 위해 무한정 블로킹하지 않음)
        3. acknowledge()가 호출된 레코드만 처리 완료로 간주되어야 함 (at-least-once)
        4. 재연결을 모두 소진하면 ConnectionClosedError를 발생시켜야 함

    Examples:
        >>> source: EventSource = KafkaEventSource(config)
        >>> await source.connect()
        >>> for partition in source.get_partitions():
        ...     record = await source.read(partition)
        ...     if record is not None:
        ...         await source.acknowledge(record)
        >>> await source.disconnect()
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        이벤트 소스에 연결하고 파티션 정보를 가져옵니다.

        Raises:
            ConnectionFailedError: 연결 실패 시
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """연결을 종료하고 리소스를 해제합니다."""
        pass

    @abstractmethod
    def get_partitions(self) -> list[int]:
        """
        처리할 파티션 목록을 반환합니다.

        connect() 이후에만 유효합니다.
        """
        pass

    @abstractmethod
    async def read(self, partition: int) -> SourceRecord | None:
        """
        지정한 파티션에서 다음 레코드를 읽습니다.

        Args:
            partition: 파티션 번호

        Returns:
            다음 레코드, 또는 poll 제한 시간 안에 레코드가 없으면 None

        Raises:
            ConnectionClosedError: 재연결을 모두 소진한 경우
        """
        pass

    @abstractmethod
    async def acknowledge(self, record: SourceRecord) -> None:
        """
        레코드 처리가 끝났음을 알립니다. 이후 오프셋이 커밋될 수 있습니다.

        Args:
            record: 처리가 끝난 레코드
        """
        pass
