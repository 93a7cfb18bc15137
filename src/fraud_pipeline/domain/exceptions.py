"""
사기 거래 파이프라인 예외 정의

이 모듈은 파이프라인(디코딩 → 필터 → 저장)에서 발생할 수 있는 모든 예외를 정의합니다.
모든 예외는 명확한 계층 구조를 가지며, 컨텍스트 정보를 포함하고
예외 체이닝(__cause__)을 지원합니다.

예외 계층 구조:
    Exception
    └── FraudPipelineException (기본 예외)
        ├── ConnectionException (연결 관련)
        │   ├── ConnectionFailedError (시작 시 연결 실패, 치명적)
        │   └── ConnectionClosedError (실행 중 연결 끊김, 재연결 소진)
        ├── ValidationException (검증 실패)
        │   ├── DecodeError (잘못된 레코드, 해당 레코드만 폐기)
        │   ├── InvalidConfigurationError
        │   └── InvalidTransitionError
        ├── PredicateError (판정 실패, 사기 아님으로 간주)
        └── WriteError (저장 실패, 재시도 후 레코드 단위 실패)
"""


class FraudPipelineException(Exception):
    """
    파이프라인의 기본 예외 클래스

    모든 파이프라인 예외의 부모 클래스입니다.
    이 예외를 catch하면 파이프라인의 모든 예외를 처리할 수 있습니다.

    Attributes:
        message: 예외 메시지 (컨텍스트 정보 포함)

    Examples:
        >>> try:
        ...     raise FraudPipelineException("Pipeline failed for partition 3")
        ... except FraudPipelineException as e:
        ...     print(f"Error: {e}")
        Error: Pipeline failed for partition 3
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """
        Args:
            message: 예외 메시지. 가능한 많은 컨텍스트 정보를 포함해야 합니다.
                    (예: "Failed to write point for userId=54321 after 3 attempts")
            cause: 이 예외를 발생시킨 원본 예외 (선택 사항)
        """
        self.message = message
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """예외를 문자열로 표현"""
        if self.__cause__:
            return f"{self.message} (Caused by: {self.__cause__})"
        return self.message


class ConnectionException(FraudPipelineException):
    """
    연결 관련 예외

    Kafka 브로커 또는 InfluxDB 와의 연결 과정에서 발생하는 모든 에러를 나타냅니다.

    Examples:
        >>> exc = ConnectionException(
        ...     "Failed to reach InfluxDB at http://localhost:8086"
        ... )
        >>> print(exc)
        Failed to reach InfluxDB at http://localhost:8086
    """

    pass


class ConnectionFailedError(ConnectionException):
    """시작 시 연결 시도 실패를 나타냅니다."""

    pass


class ConnectionClosedError(ConnectionException):
    """실행 중 연결이 끊겼고 재연결도 실패했음을 나타냅니다."""

    pass


class ValidationException(FraudPipelineException):
    """
    데이터 검증 실패 예외

    잘못된 설정값, 필수 필드 누락, 음수 금액 등
    비즈니스 규칙 위반이나 데이터 검증 실패를 나타냅니다.

    Examples:
        >>> exc = ValidationException("amount must be >= 0, got -5")
        >>> print(exc)
        amount must be >= 0, got -5
    """

    pass


class DecodeError(ValidationException):
    """
    원시 이벤트 페이로드를 Transaction 으로 변환하지 못했음을 나타냅니다.

    해당 레코드만 폐기되며 스트림 처리는 계속됩니다.
    """

    def __init__(
        self, message: str, payload: bytes | str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message, cause=cause)
        self.payload = payload


class InvalidConfigurationError(ValidationException):
    """잘못된 설정 값을 나타냅니다."""

    pass


class InvalidTransitionError(ValidationException):
    """상태 머신에서 허용되지 않는 상태 전환을 나타냅니다."""

    pass


class PredicateError(FraudPipelineException):
    """
    사기 판정 로직 실패 예외

    판정기가 예외를 던지면 이 예외로 감싸서 기록하고,
    해당 거래는 사기가 아닌 것으로 간주합니다 (저장하지 않음).
    """

    pass


class WriteError(FraudPipelineException):
    """
    시계열 저장소 쓰기 실패 예외

    재시도를 모두 소진한 뒤 레코드 단위 실패로 보고됩니다.
    수동 재처리가 가능하도록 user_id 와 amount 를 함께 보관합니다.

    Examples:
        >>> exc = WriteError(
        ...     "Failed to write point after 3 attempts",
        ...     user_id="54321",
        ...     amount=15000,
        ... )
        >>> exc.user_id, exc.amount
        ('54321', 15000)
    """

    def __init__(
        self,
        message: str,
        user_id: str | None = None,
        amount: int | None = None,
        attempts: int = 0,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.user_id = user_id
        self.amount = amount
        self.attempts = attempts
