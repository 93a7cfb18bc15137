"""
파이프라인 수퍼바이저 상태 모델

수퍼바이저의 생명주기 상태를 나타내는 Enum과 상태 전환 검증 로직을 제공합니다.
상태 전환은 엄격하게 검증되어 잘못된 상태 변경을 방지합니다.

상태 전환 다이어그램:
    STOPPED --> STARTING --> RUNNING --> STOPPING --> STOPPED
                   |                                    ^
                   +------------ (연결 실패) -------------+
"""

from datetime import UTC, datetime
from enum import Enum

from fraud_pipeline.domain.exceptions import InvalidTransitionError


class PipelineState(Enum):
    """
    파이프라인 수퍼바이저 상태

    Attributes:
        STOPPED: 정지 상태 (초기 상태이자 종료 상태)
        STARTING: 이벤트 소스와 저장소에 연결 중
        RUNNING: 파티션 워커가 레코드를 처리 중
        STOPPING: 종료 신호 수신 후 진행 중인 레코드 완료 및 리소스 해제 중

    Examples:
        >>> state = PipelineState.STOPPED
        >>> state.is_valid_transition(PipelineState.STARTING)
        True
        >>> state.is_valid_transition(PipelineState.RUNNING)
        False
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"

    @classmethod
    def _get_valid_transitions(cls) -> dict["PipelineState", set["PipelineState"]]:
        """
        상태 전환 허용 매트릭스 반환

        상태 전환 규칙:
            - STOPPED: 시작은 STARTING으로만 가능
            - STARTING: 두 연결 모두 성공 시 RUNNING, 하나라도 실패 시 STOPPED
            - RUNNING: 종료 신호 시 STOPPING
            - STOPPING: 리소스 해제 완료 또는 유예 시간 초과 시 STOPPED
        """
        return {
            cls.STOPPED: {cls.STARTING},
            cls.STARTING: {cls.RUNNING, cls.STOPPED},
            cls.RUNNING: {cls.STOPPING},
            cls.STOPPING: {cls.STOPPED},
        }

    def is_valid_transition(self, target: "PipelineState") -> bool:
        """
        특정 상태로의 전환이 가능한지 확인

        Args:
            target: 전환하려는 목표 상태

        Returns:
            전환 가능 여부 (True/False)
        """
        # 동일한 상태로의 전환은 항상 허용 (멱등성)
        if self == target:
            return True

        transitions = self._get_valid_transitions()
        return target in transitions.get(self, set())

    def validate_transition(self, target: "PipelineState") -> None:
        """
        상태 전환 유효성 검증

        Args:
            target: 전환하려는 목표 상태

        Raises:
            InvalidTransitionError: 허용되지 않는 전환인 경우

        Examples:
            >>> PipelineState.RUNNING.validate_transition(PipelineState.STARTING)
            Traceback (most recent call last):
                ...
            InvalidTransitionError: Invalid state transition: RUNNING -> STARTING...
        """
        if not self.is_valid_transition(target):
            transitions = self._get_valid_transitions()
            valid_transitions = transitions.get(self, set())
            raise InvalidTransitionError(
                f"Invalid state transition: {self.name} -> {target.name}. "
                f"Valid transitions from {self.name} are: "
                f"{', '.join(s.name for s in valid_transitions)}"
            )

    @property
    def code(self) -> int:
        """메트릭 게이지용 숫자 코드"""
        return list(PipelineState).index(self)


class StateTransitionTracker:
    """
    상태 전환 히스토리 추적기

    종료 순서를 결정적으로 검증하고 모니터링하기 위해 상태 전환 이력을 기록합니다.

    Examples:
        >>> tracker = StateTransitionTracker()
        >>> tracker.record_transition(
        ...     PipelineState.STOPPED,
        ...     PipelineState.STARTING,
        ...     "start() called"
        ... )
        >>> len(tracker.get_history())
        1
    """

    def __init__(self) -> None:
        self._history: list[dict[str, object]] = []

    def record_transition(
        self, from_state: PipelineState, to_state: PipelineState, reason: str
    ) -> None:
        """
        상태 전환 기록

        Args:
            from_state: 이전 상태
            to_state: 새로운 상태
            reason: 전환 사유
        """
        self._history.append(
            {
                "timestamp": datetime.now(UTC),
                "from_state": from_state,
                "to_state": to_state,
                "reason": reason,
            }
        )

    def get_history(self) -> list[dict[str, object]]:
        """전환 히스토리 사본을 반환합니다."""
        return self._history.copy()

    def get_states(self) -> list[PipelineState]:
        """거쳐 온 상태들을 순서대로 반환합니다 (첫 from_state 포함)."""
        if not self._history:
            return []
        states = [self._history[0]["from_state"]]
        states.extend(entry["to_state"] for entry in self._history)
        return states

    def clear_history(self) -> None:
        self._history.clear()
