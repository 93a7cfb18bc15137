"""
파이프라인 수퍼바이저

이벤트 소스, 코덱, 필터 단계, 데이터 포인트 기록자를 조합하여 실행 중인 파이프라인을 관리합니다.
시작 순서, 파티션 워커 생성, 그리고 종료 순서(graceful shutdown)를 책임집니다.

상태 머신: STOPPED → STARTING → RUNNING → STOPPING → STOPPED
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Optional

from prometheus_client import Gauge

from fraud_pipeline.application.services.filter_stage import FilterStage
from fraud_pipeline.application.services.partition_worker import PartitionWorker
from fraud_pipeline.domain.exceptions import ConnectionFailedError
from fraud_pipeline.domain.models.pipeline_state import PipelineState, StateTransitionTracker
from fraud_pipeline.domain.ports.event_source import EventSource
from fraud_pipeline.domain.ports.point_writer import PointWriter
from fraud_pipeline.domain.predicates import FraudPredicate
from fraud_pipeline.infrastructure.serialization.transaction_codec import TransactionCodec

logger = logging.getLogger(__name__)

PIPELINE_STATE = Gauge(
    "fraud_pipeline_state",
    "Current supervisor state (0=stopped, 1=starting, 2=running, 3=stopping)",
)

# 종료 유예 시간 중 리소스 해제(저장소 close, 소스 disconnect)에 남겨 두는 비율
RELEASE_BUDGET_FRACTION = 0.25


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PipelineSupervisor:
    """
    파이프라인 수퍼바이저

    저장소 클라이언트와 이벤트 소스는 생성 시 주입되며, start() 에서 연결하고
    모든 종료 경로(오류 경로 포함)에서 해제합니다.

    Features:
        - 명시적 상태 머신과 전환 이력
        - 파티션당 워커 하나 (파티션 간 병렬, 파티션 내 순차)
        - 종료 이벤트를 호출 체인으로 전달하는 협력적 취소
        - 유예 시간 초과 시 강제 종료

    Attributes:
        _source: 이벤트 소스
        _writer: 데이터 포인트 기록자 (모든 워커가 공유)
        _predicate: 사기 판정기 (워커마다 별도 FilterStage 로 감쌈)
        _codec: 트랜잭션 코덱
        _shutdown_grace_seconds: 종료 유예 시간
        _state: 현재 상태
        _tracker: 상태 전환 이력
        _stop_event: 워커에 전달되는 종료 신호
        _workers: 파티션 번호 -> 워커
        _tasks: 파티션 번호 -> 워커 태스크
        _forced_shutdown: 마지막 종료가 유예 시간 초과로 강제되었는지 여부
    """

    def __init__(
        self,
        source: EventSource,
        writer: PointWriter,
        predicate: FraudPredicate,
        codec: Optional[TransactionCodec] = None,
        shutdown_grace_seconds: float = 10.0,
        use_event_time: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._source = source
        self._writer = writer
        self._predicate = predicate
        self._codec = codec or TransactionCodec(clock=clock)
        self._shutdown_grace_seconds = shutdown_grace_seconds
        self._use_event_time = use_event_time
        self._clock = clock

        self._state = PipelineState.STOPPED
        self._tracker = StateTransitionTracker()
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._workers: dict[int, PartitionWorker] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._forced_shutdown = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def forced_shutdown(self) -> bool:
        return self._forced_shutdown

    def get_state_history(self) -> list[PipelineState]:
        return self._tracker.get_states()

    async def start(self) -> None:
        """
        파이프라인 시작

        1. 저장소 연결
        2. 이벤트 소스 연결 및 파티션 조회
        3. 파티션마다 워커 태스크 시작

        Raises:
            RuntimeError: 이미 실행 중인 경우
            ConnectionFailedError: 어느 한쪽 연결이라도 실패한 경우 (상태는 STOPPED 로 복귀)
        """
        async with self._lock:
            if self._state != PipelineState.STOPPED:
                raise RuntimeError(f"Pipeline is already {self._state.value}")

            logger.info("Starting fraud pipeline...")
            self._transition_state(PipelineState.STARTING, "start() called")
            self._stop_event = asyncio.Event()
            self._forced_shutdown = False
            self._workers.clear()
            self._tasks.clear()

            try:
                await self._writer.connect()
                await self._source.connect()
                partitions = self._source.get_partitions()
            except Exception as e:
                logger.error(f"Failed to start fraud pipeline: {e}")
                loop = asyncio.get_running_loop()
                await self._release_resources(loop.time() + self._shutdown_grace_seconds)
                self._transition_state(PipelineState.STOPPED, f"startup failed: {e}")
                if isinstance(e, ConnectionFailedError):
                    raise
                raise ConnectionFailedError("Failed to start fraud pipeline", cause=e)

            for partition in partitions:
                worker = PartitionWorker(
                    partition=partition,
                    source=self._source,
                    codec=self._codec,
                    filter_stage=FilterStage(self._predicate),
                    writer=self._writer,
                    stop_event=self._stop_event,
                    clock=self._clock,
                    use_event_time=self._use_event_time,
                )
                self._workers[partition] = worker
                self._tasks[partition] = asyncio.create_task(
                    worker.run(), name=f"partition-worker-{partition}"
                )

            self._transition_state(PipelineState.RUNNING, "source and store connected")
            logger.info(f"Fraud pipeline started with {len(partitions)} partition workers")

    async def stop(self) -> None:
        """
        파이프라인 중단 (Graceful Shutdown)

        1. 종료 신호 설정 (새 레코드 수신 중단, 진행 중인 레코드는 완료)
        2. 유예 시간 동안 워커 종료 대기, 초과 시 강제 취소
        3. 저장소 flush/close
        4. 이벤트 소스 연결 해제

        멱등성을 보장하여 여러 번 호출해도 안전합니다.
        """
        async with self._lock:
            if self._state != PipelineState.RUNNING:
                logger.debug(f"Pipeline is {self._state.value}, skipping stop")
                return

            logger.info("Stopping fraud pipeline...")
            self._transition_state(PipelineState.STOPPING, "shutdown requested")
            self._stop_event.set()

        # 드레인, 저장소 close, 소스 disconnect 가 하나의 마감 시각을 공유합니다.
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._shutdown_grace_seconds
        drain_timeout = self._shutdown_grace_seconds * (1 - RELEASE_BUDGET_FRACTION)

        try:
            await self._drain_workers(drain_timeout)
        finally:
            await self._release_resources(deadline)
            reason = "grace period exceeded" if self._forced_shutdown else "resources released"
            self._transition_state(PipelineState.STOPPED, reason)
            logger.info(f"Fraud pipeline stopped ({reason})")

    async def run(self, shutdown_event: asyncio.Event) -> bool:
        """
        파이프라인을 시작하고 종료 신호 또는 모든 워커 종료까지 실행한 뒤 중단합니다.

        Args:
            shutdown_event: 외부(시그널 핸들러 등)에서 설정하는 종료 신호

        Returns:
            종료 신호로 정상 종료되면 True, 모든 파티션 워커가 스스로 멈춘 경우 False

        Raises:
            ConnectionFailedError: 시작 시 연결 실패
        """
        await self.start()

        shutdown_waiter = asyncio.create_task(shutdown_event.wait())
        pending = set(self._tasks.values())

        try:
            while pending and not shutdown_event.is_set():
                done, _ = await asyncio.wait(
                    pending | {shutdown_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
        finally:
            shutdown_waiter.cancel()
            await self.stop()

        if shutdown_event.is_set():
            return True

        logger.critical("All partition workers have stopped; no partition left to consume")
        return False

    def get_status(self) -> dict:
        """
        파이프라인 상태 조회

        Returns:
            상태 정보 딕셔너리:
                - state: 현재 상태
                - partitions: 파티션별 워커 통계
                - totals: 전체 합계 (processed, decode_failures, ... , failures)
                - halted_partitions: 치명적 오류로 멈춘 파티션 목록
        """
        partitions = {p: w.stats.to_dict() for p, w in self._workers.items()}
        totals = {
            key: sum(stats[key] for stats in partitions.values())
            for key in (
                "processed",
                "decode_failures",
                "predicate_failures",
                "flagged",
                "written",
                "write_failures",
            )
        }
        totals["failures"] = (
            totals["decode_failures"] + totals["predicate_failures"] + totals["write_failures"]
        )

        return {
            "state": self._state.value,
            "partitions": partitions,
            "totals": totals,
            "halted_partitions": sorted(p for p, s in partitions.items() if s["halted"]),
            "forced_shutdown": self._forced_shutdown,
        }

    # ========== Private Methods ==========

    def _transition_state(self, target_state: PipelineState, reason: str) -> None:
        """
        상태 전환을 수행합니다.

        Raises:
            InvalidTransitionError: 허용되지 않는 상태 전환인 경우
        """
        self._state.validate_transition(target_state)
        logger.debug(f"State transition: {self._state.name} -> {target_state.name} ({reason})")
        self._tracker.record_transition(self._state, target_state, reason)
        self._state = target_state
        PIPELINE_STATE.set(target_state.code)

    async def _drain_workers(self, timeout: float) -> None:
        """
        워커 태스크가 현재 레코드를 끝내고 종료하기를 기다립니다.

        유예 시간 안에 끝나지 않은 워커는 취소됩니다. 이때 진행 중이던 레코드는
        실패로 간주되며 오프셋이 저장되지 않으므로 재시작 시 다시 전달됩니다.
        """
        tasks = list(self._tasks.values())
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=timeout)

        if pending:
            self._forced_shutdown = True
            logger.warning(
                f"{len(pending)} partition workers did not finish within "
                f"{timeout}s, cancelling (in-flight records will be redelivered)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    f"Worker task {task.get_name()} failed: {task.exception()!r}",
                    exc_info=task.exception(),
                )

    async def _release_resources(self, deadline: float) -> None:
        """
        저장소를 flush/close 한 뒤 이벤트 소스 연결을 해제합니다. 실패는 기록만 합니다.

        두 단계 모두 deadline(loop.time() 기준) 안에 끝나야 합니다. 저장소 close 는
        남은 시간의 절반까지만 쓰고, 시간을 넘긴 단계는 취소(강제 종료)됩니다.
        """
        loop = asyncio.get_running_loop()
        writer_deadline = loop.time() + max(deadline - loop.time(), 0.0) / 2

        await self._release("point writer", self._writer.close, writer_deadline)
        await self._release("event source", self._source.disconnect, deadline)

    async def _release(
        self, name: str, release: Callable[[], Awaitable[None]], deadline: float
    ) -> None:
        try:
            async with asyncio.timeout_at(deadline):
                await release()
        except TimeoutError:
            logger.error(f"Releasing {name} did not finish before the shutdown deadline; abandoned")
        except Exception as e:
            logger.error(f"Failed to release {name}: {e!r}")
