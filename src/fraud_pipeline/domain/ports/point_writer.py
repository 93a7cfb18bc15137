"""
데이터 포인트 기록자 포트 인터페이스

사기로 판정된 거래를 시계열 저장소(InfluxDB 등)에 기록하는 추상 인터페이스입니다.
저장소 클라이언트는 수퍼바이저가 시작 시점에 연결하고, 모든 종료 경로에서 해제합니다.
"""

from abc import ABC, abstractmethod

from fraud_pipeline.domain.models.transaction import DataPoint


class PointWriter(ABC):
    """
    데이터 포인트 기록자 포트 인터페이스

    하나의 인스턴스가 모든 파티션 워커에서 공유됩니다.
    각 write() 호출은 서로 독립적이어야 하며 워커 간 잠금이 필요 없어야 합니다.

    Implementation Requirements:
        1. write()는 저장소가 쓰기를 확인(acknowledge)할 때까지 블로킹해야 함
        2. 일시적 실패는 제한된 횟수만큼 지수 백오프로 재시도해야 함
        3. 재시도를 모두 소진하면 WriteError를 발생시켜야 함
        4. close()는 멱등해야 하며 버퍼를 flush한 뒤 연결을 종료해야 함
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        저장소에 연결하고 사용 가능한지 확인합니다.

        Raises:
            ConnectionFailedError: 연결 실패 시
        """
        pass

    @abstractmethod
    async def write(self, point: DataPoint) -> None:
        """
        데이터 포인트 하나를 기록합니다.

        Args:
            point: 기록할 데이터 포인트

        Raises:
            WriteError: 재시도를 모두 소진한 경우
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """버퍼를 flush하고 연결을 종료합니다."""
        pass
