"""
Repricer Exception Classes

리프라이싱 파이프라인의 구조화된 에러 처리를 위한 예외 클래스 정의
"""
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """에러 심각도 레벨"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorKind(str, Enum):
    """RepriceResult.error_kind 분류"""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    VALIDATION_REJECTED = "validation_rejected"
    COST_MODEL = "cost_model"
    CONFIGURATION = "configuration"
    TRANSIENT_INFRA = "transient_infra"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    INTERNAL = "internal"


class RepricerError(Exception):
    """
    Base exception for all repricer errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        severity: 에러 심각도
        context: 추가 컨텍스트 정보
        recoverable: 재시도로 복구 가능 여부
    """
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "recoverable": self.recoverable
        }


class NotFoundError(RepricerError):
    """SKU/전략/시그널이 존재하지 않음 (재시도 불가)"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, entity: Optional[str] = None, entity_id: Optional[Any] = None):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            severity=ErrorSeverity.LOW,
            context={"entity": entity, "entity_id": str(entity_id) if entity_id is not None else None},
            recoverable=False
        )
        self.entity = entity
        self.entity_id = entity_id


class InactiveError(RepricerError):
    """SKU 비활성 또는 활성 전략 없음 (정보성, 재시도 불가)"""
    kind = ErrorKind.INACTIVE

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="INACTIVE",
            severity=ErrorSeverity.LOW,
            context=kwargs,
            recoverable=False
        )


class CostModelError(RepricerError):
    """
    비용 구조 오류 (변동비율 >= 100% 등).
    SKU 경제성 설정이 잘못되었음을 의미하므로 기본값으로 대체하지 않고 그대로 노출합니다.
    """
    kind = ErrorKind.COST_MODEL

    def __init__(self, message: str, variable_rate: Optional[float] = None, **kwargs):
        context = {"variable_rate": variable_rate}
        context.update(kwargs)
        super().__init__(
            message=message,
            error_code="COST_MODEL_ERROR",
            severity=ErrorSeverity.CRITICAL,
            context=context,
            recoverable=False
        )
        self.variable_rate = variable_rate


class InvalidPriceError(RepricerError, ValueError):
    """0 이하 가격으로 마진 계산 시도"""
    kind = ErrorKind.VALIDATION_REJECTED

    def __init__(self, message: str, price: Optional[float] = None):
        super().__init__(
            message=message,
            error_code="INVALID_PRICE",
            severity=ErrorSeverity.MEDIUM,
            context={"price": price},
            recoverable=False
        )
        self.price = price


class ActionConfigurationError(RepricerError):
    """액션에 필수 value가 없는 등 전략 액션 설정 오류"""
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, action_type: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ACTION_CONFIGURATION_ERROR",
            severity=ErrorSeverity.HIGH,
            context={"action_type": action_type},
            recoverable=False
        )
        self.action_type = action_type


class StrategyConfigurationError(RepricerError):
    """알 수 없는 전략 유형, 내장 알고리즘도 액션도 없는 전략 등"""
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, strategy_type: Optional[str] = None, **kwargs):
        context = {"strategy_type": strategy_type}
        context.update(kwargs)
        super().__init__(
            message=message,
            error_code="STRATEGY_CONFIGURATION_ERROR",
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False
        )
        self.strategy_type = strategy_type


class TransientInfraError(RepricerError):
    """
    일시적 인프라 오류 (스냅샷 조회, 저장소 I/O 등).
    백오프 후 재시도 가능.
    """
    kind = ErrorKind.TRANSIENT_INFRA

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        context = {"operation": operation}
        context.update(kwargs)
        super().__init__(
            message=message,
            error_code="TRANSIENT_INFRA_ERROR",
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True
        )
        self.operation = operation


class PricePushError(TransientInfraError):
    """
    마켓플레이스 가격 반영 실패.
    내부 커밋을 보상(이전 가격 복원)한 뒤 재시도 가능한 잡 실패로 노출합니다.
    """

    def __init__(
        self,
        message: str,
        external_sku_id: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        super().__init__(
            message,
            operation="price_push",
            external_sku_id=external_sku_id,
            status_code=status_code,
            response_body=response_body
        )
        self.error_code = "PRICE_PUSH_ERROR"
        self.external_sku_id = external_sku_id
        self.status_code = status_code


class ConcurrencyConflictError(RepricerError):
    """SKU 락 획득 실패 (동일 SKU 리프라이싱이 이미 진행 중)"""
    kind = ErrorKind.CONCURRENCY_CONFLICT

    def __init__(self, message: str, sku_id: Optional[Any] = None, timeout_seconds: Optional[float] = None):
        super().__init__(
            message=message,
            error_code="CONCURRENCY_CONFLICT",
            severity=ErrorSeverity.LOW,
            context={"sku_id": str(sku_id) if sku_id is not None else None, "timeout_seconds": timeout_seconds},
            recoverable=True
        )
        self.sku_id = sku_id
        self.timeout_seconds = timeout_seconds
