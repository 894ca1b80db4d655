from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from repricer.services.pricing.constants import (
    ActionMode,
    ActionType,
    ConditionOperator,
    ConstraintType,
    Metric,
    SignalType,
    StopConditionType,
    StrategyType,
)

MAX_CONDITION_DEPTH = 5

# 내장 알고리즘이 있는 전략 유형. 나머지는 actions가 필수.
BUILTIN_STRATEGY_TYPES = {
    StrategyType.COMPETITIVE_HOLD,
    StrategyType.PRICE_LEADER,
    StrategyType.MARGIN_MAXIMIZER,
}

ConditionValue = Union[float, str, List[Union[float, str]]]


class ConditionSchema(BaseModel):
    """
    조건 트리 노드.
    metric은 등록된 Metric만 허용하므로 알 수 없는 지표는 저장 시점에 거절됩니다.
    """
    id: Optional[str] = None
    metric: Metric
    operator: ConditionOperator
    value: ConditionValue
    and_: List["ConditionSchema"] = Field(default_factory=list, alias="and")
    or_: List["ConditionSchema"] = Field(default_factory=list, alias="or")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def validate_operator_value(self) -> "ConditionSchema":
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, list):
                raise ValueError(f"'{self.operator.value}' 연산자는 리스트 값이 필요합니다.")
        if self.depth() > MAX_CONDITION_DEPTH:
            raise ValueError(f"조건 중첩 깊이는 {MAX_CONDITION_DEPTH} 이하여야 합니다.")
        return self

    def depth(self) -> int:
        children = [*self.and_, *self.or_]
        if not children:
            return 1
        return 1 + max(child.depth() for child in children)


class ActionSchema(BaseModel):
    id: Optional[str] = None
    type: ActionType
    value: Optional[float] = None
    mode: ActionMode = ActionMode.ABSOLUTE
    target: Optional[str] = None


class ConstraintSchema(BaseModel):
    id: Optional[str] = None
    type: ConstraintType
    value: float
    enabled: bool = True


class StopConditionSchema(BaseModel):
    id: Optional[str] = None
    type: StopConditionType
    value: float


class StrategyConfig(BaseModel):
    """
    가격 파이프라인이 읽는 전략 설정 (읽기 전용).
    ORM Strategy에서 model_validate(strategy)로 생성합니다.
    """
    id: Optional[uuid.UUID] = None
    name: str
    type: StrategyType
    active: bool = True

    conditions: List[ConditionSchema] = Field(default_factory=list)
    actions: List[ActionSchema] = Field(default_factory=list)
    constraints: List[ConstraintSchema] = Field(default_factory=list)
    stop_conditions: List[StopConditionSchema] = Field(default_factory=list)
    allowed_signals: List[SignalType] = Field(default_factory=list)
    ignored_signals: List[SignalType] = Field(default_factory=list)

    cooldown_minutes: int = Field(default=360, ge=0)
    max_changes_per_day: int = Field(default=3, ge=0)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("conditions", "actions", "constraints", "stop_conditions", "allowed_signals", "ignored_signals", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @model_validator(mode="after")
    def validate_dispatch(self) -> "StrategyConfig":
        if self.type not in BUILTIN_STRATEGY_TYPES and not self.actions:
            raise ValueError(f"'{self.type.value}' 전략은 내장 알고리즘이 없으므로 actions가 필요합니다.")
        return self

    def enabled_constraints(self, ctype: Optional[ConstraintType] = None) -> list[ConstraintSchema]:
        return [c for c in self.constraints if c.enabled and (ctype is None or c.type == ctype)]

    def effective_max_changes_per_day(self) -> int:
        limits = [self.max_changes_per_day]
        limits += [int(c.value) for c in self.enabled_constraints(ConstraintType.MAX_CHANGES_PER_DAY)]
        return min(limits)

    def to_storage(self) -> dict:
        """ORM JSON 컬럼 저장용 직렬화"""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class StrategyCreate(StrategyConfig):
    user_id: uuid.UUID


class StrategyResponse(StrategyConfig):
    user_id: uuid.UUID
    created_at: Optional[datetime] = None


class StrategyActivateResponse(BaseModel):
    sku_id: uuid.UUID
    strategy_id: uuid.UUID
    active: bool
    activated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


ConditionSchema.model_rebuild()
