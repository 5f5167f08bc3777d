"""Backend-neutral query models: predicates, ordering and result pages."""

from enum import Enum
from typing import Any, Iterable, Optional
from pydantic import BaseModel, ConfigDict, Field


class Operator(str, Enum):
    """Predicate operators understood by every backend."""
    EQ = "eq"
    ILIKE = "ilike"  # case-insensitive substring
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    OR = "or"  # value is a tuple of predicates


class Predicate(BaseModel):
    """A single field/operator/value condition."""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Storage column name ('or' for groups)")
    op: Operator
    value: Any = None

    @classmethod
    def eq(cls, field: str, value: Any) -> "Predicate":
        return cls(field=field, op=Operator.EQ, value=value)

    @classmethod
    def ilike(cls, field: str, value: str) -> "Predicate":
        return cls(field=field, op=Operator.ILIKE, value=value)

    @classmethod
    def gte(cls, field: str, value: Any) -> "Predicate":
        return cls(field=field, op=Operator.GTE, value=value)

    @classmethod
    def lte(cls, field: str, value: Any) -> "Predicate":
        return cls(field=field, op=Operator.LTE, value=value)

    @classmethod
    def in_(cls, field: str, values: Iterable[Any]) -> "Predicate":
        # Sorted so equal id sets lower to equal predicates
        return cls(field=field, op=Operator.IN, value=tuple(sorted(set(values))))

    @classmethod
    def any_of(cls, *predicates: "Predicate") -> "Predicate":
        return cls(field="or", op=Operator.OR, value=tuple(predicates))


class OrderBy(BaseModel):
    """Ordering directive."""
    model_config = ConfigDict(frozen=True)

    field: str = "created_at"
    ascending: bool = False


class Query(BaseModel):
    """Everything a backend needs to run one read."""
    columns: str = "*"
    predicates: list[Predicate] = Field(default_factory=list)
    order: Optional[OrderBy] = None
    offset: Optional[int] = Field(None, ge=0)
    limit: Optional[int] = Field(None, ge=1)
    count: bool = Field(default=False, description="Request an exact total count")


class QueryResult(BaseModel):
    """Rows plus the total count (when requested)."""
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total: Optional[int] = None
