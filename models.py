"""
Pydantic models for describing, evaluating and reporting sequence pipelines.

A pipeline is a source, zero or more operations and exactly one consumer.
Callables are written as Python lambda expressions, e.g. ``"lambda x: x * 2"``.
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from datetime import datetime
from enum import Enum


class SourceType(str, Enum):
    """Source generator enumeration"""
    RANGE = "range"
    COUNT_FROM = "count_from"
    CHARS = "chars"
    COLLECTION = "collection"
    FAHRENHEIT = "fahrenheit"


class CollectionMode(str, Enum):
    """How a collection source hands out its elements"""
    BORROW = "borrow"
    COPY = "copy"
    CONSUME = "consume"


class OperationType(str, Enum):
    """Adaptor enumeration"""
    MAP = "map"
    FILTER = "filter"
    FILTER_MAP = "filter_map"
    REV = "rev"
    CHAIN = "chain"
    ZIP = "zip"
    ENUMERATE = "enumerate"
    STEP_BY = "step_by"
    TAKE = "take"
    TAKE_WHILE = "take_while"
    SKIP = "skip"
    INSPECT = "inspect"
    UNIQUE = "unique"
    DEDUP = "dedup"
    SORTED = "sorted"
    SORTED_BY = "sorted_by"
    BATCH = "batch"
    PAGE = "page"


class ConsumerType(str, Enum):
    """Consumer enumeration"""
    COLLECT = "collect"
    COUNT = "count"
    SUM = "sum"
    FOLD = "fold"
    REDUCE = "reduce"
    MIN = "min"
    MAX = "max"
    MINMAX = "minmax"
    FIND = "find"
    FIND_MAP = "find_map"
    POSITION = "position"
    ANY = "any"
    ALL = "all"
    FIRST = "first"
    LAST = "last"
    NTH = "nth"
    PARTITION = "partition"
    GROUP_BY = "group_by"
    JOIN = "join"


# operations and consumers that cannot run without a callable
FUNCTION_OPERATIONS = {
    OperationType.MAP, OperationType.FILTER, OperationType.FILTER_MAP,
    OperationType.TAKE_WHILE, OperationType.INSPECT, OperationType.SORTED_BY,
}
COUNT_OPERATIONS = {
    OperationType.STEP_BY, OperationType.TAKE, OperationType.SKIP, OperationType.BATCH,
}
FUNCTION_CONSUMERS = {
    ConsumerType.FOLD, ConsumerType.REDUCE, ConsumerType.FIND, ConsumerType.FIND_MAP,
    ConsumerType.POSITION, ConsumerType.PARTITION, ConsumerType.GROUP_BY,
}


class EngineSettings(BaseModel):
    """Process-wide engine configuration (read from SEQUENCE_* environment variables)"""
    materialize_limit: Optional[int] = Field(
        None,
        ge=0,
        description="Maximum elements an eager operation may buffer; None means unlimited"
    )
    log_level: str = Field("INFO", description="Logging level name")
    max_preview: int = Field(
        1000,
        ge=1,
        description="Upper bound for the limit parameter of table endpoints"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Normalise and check the logging level name"""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class SourceSpec(BaseModel):
    """Description of the sequence a pipeline starts from"""
    type: SourceType = Field(..., description="Source generator to use")
    start: Optional[Union[int, float]] = Field(None, description="First value (range, count_from, fahrenheit)")
    end: Optional[int] = Field(None, description="End bound (range)")
    inclusive: bool = Field(False, description="Whether the end bound is included (range)")
    step: Optional[Union[int, float]] = Field(None, description="Increment between values")
    first: Optional[str] = Field(None, description="First character (chars)")
    last: Optional[str] = Field(None, description="Last character, inclusive (chars)")
    items: Optional[List[Any]] = Field(None, description="Elements (collection)")
    mode: CollectionMode = Field(CollectionMode.BORROW, description="Collection access mode")

    @model_validator(mode='after')
    def check_required_fields(self):
        """Make sure each source type carries the fields it needs"""
        if self.type == SourceType.RANGE and (self.start is None or self.end is None):
            raise ValueError("range source requires start and end")
        if self.type == SourceType.CHARS and (self.first is None or self.last is None):
            raise ValueError("chars source requires first and last")
        if self.type == SourceType.COLLECTION and self.items is None:
            raise ValueError("collection source requires items")
        return self


class OperationSpec(BaseModel):
    """One adaptor applied to the pipeline"""
    type: OperationType = Field(..., description="Adaptor to apply")
    function: Optional[str] = Field(
        None,
        description="Lambda expression (map/filter/filter_map/take_while/inspect/sorted_by/unique/sorted)",
        examples=["lambda x: x % 2 == 0"]
    )
    count: Optional[int] = Field(None, description="Element count (take/skip/step_by/batch)")
    other: Optional[SourceSpec] = Field(None, description="Second source (chain/zip)")
    reverse: bool = Field(False, description="Sort descending (sorted)")
    start: int = Field(0, description="First index (enumerate)")
    page_number: Optional[int] = Field(None, ge=1, description="1-indexed page (page)")
    page_size: Optional[int] = Field(None, ge=1, description="Page size (page)")

    @model_validator(mode='after')
    def check_arguments(self):
        """Make sure the adaptor received the argument it needs"""
        if self.type in FUNCTION_OPERATIONS and not self.function:
            raise ValueError(f"{self.type.value} requires a function")
        if self.type in COUNT_OPERATIONS and self.count is None:
            raise ValueError(f"{self.type.value} requires a count")
        if self.type in (OperationType.CHAIN, OperationType.ZIP) and self.other is None:
            raise ValueError(f"{self.type.value} requires another source")
        if self.type == OperationType.PAGE and (self.page_number is None or self.page_size is None):
            raise ValueError("page requires page_number and page_size")
        return self


class ConsumerSpec(BaseModel):
    """The single consumer that drives the pipeline"""
    type: ConsumerType = Field(ConsumerType.COLLECT, description="Consumer to invoke")
    function: Optional[str] = Field(None, description="Lambda expression for the consumer")
    initial: Optional[Any] = Field(None, description="Initial accumulator (fold, reduce, sum)")
    separator: str = Field("", description="Separator (join)")
    n: Optional[int] = Field(None, ge=0, description="Position (nth)")

    @model_validator(mode='after')
    def check_arguments(self):
        """Make sure the consumer received the argument it needs"""
        if self.type in FUNCTION_CONSUMERS and not self.function:
            raise ValueError(f"{self.type.value} requires a function")
        if self.type == ConsumerType.FOLD and self.initial is None:
            raise ValueError("fold requires an initial value")
        if self.type == ConsumerType.NTH and self.n is None:
            raise ValueError("nth requires n")
        return self


class PipelineRequest(BaseModel):
    """A complete pipeline: source, adaptors and one consumer"""
    source: SourceSpec = Field(..., description="Where elements come from")
    operations: List[OperationSpec] = Field(default_factory=list, description="Adaptors, applied in order")
    consumer: ConsumerSpec = Field(default_factory=ConsumerSpec, description="Consumer to invoke")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "source": {"type": "count_from", "start": 1},
                "operations": [
                    {"type": "map", "function": "lambda x: x * x"},
                    {"type": "filter", "function": "lambda x: x % 5 == 0"},
                    {"type": "take", "count": 10}
                ],
                "consumer": {"type": "collect"}
            }
        }
    )


class PerformanceInfo(BaseModel):
    """Timing and memory of one evaluated pipeline"""
    processing_time_ms: float = Field(..., description="Wall-clock evaluation time")
    memory_usage_mb: float = Field(..., description="Peak traced memory")
    output_size: Optional[int] = Field(None, description="Number of produced elements, when sized")
    operation: str = Field(..., description="Pipeline label")


class PipelineResponse(BaseModel):
    """Result of an evaluated pipeline"""
    ok: bool = Field(True, description="Request success status")
    result: Any = Field(None, description="Consumer result")
    operations_applied: List[str] = Field(default_factory=list, description="Adaptors applied, in order")
    consumer: str = Field(..., description="Consumer invoked")
    performance: PerformanceInfo
    timestamp: datetime = Field(..., description="Response timestamp")


class FahrenheitRow(BaseModel):
    """One row of the Fahrenheit-to-Celsius table"""
    fahrenheit: float
    celsius: float


class FahrenheitResponse(BaseModel):
    """A finite slice of the Fahrenheit-to-Celsius table"""
    start: float
    step: float
    limit: int
    rows: List[FahrenheitRow]


class ExampleResponse(BaseModel):
    """Result of one of the built-in walkthrough pipelines"""
    name: str
    description: str
    result: Any
    timestamp: datetime


class MetricsResponse(BaseModel):
    """Aggregated pipeline performance metrics"""
    total_operations: int
    total_time_ms: float
    total_memory_mb: float
    avg_time_ms: float
    avg_memory_mb: float


class HealthResponse(BaseModel):
    """Service health summary"""
    healthy: bool
    materialize_limit: Optional[int]
    memory_rss_mb: float
    operations_recorded: int
    timestamp: datetime


class StatusResponse(BaseModel):
    """Standard status response"""
    ok: bool = Field(True, description="Request success status")
    message: str = Field(..., description="Status message")
    timestamp: datetime = Field(..., description="Response timestamp")


class ErrorResponse(BaseModel):
    """Error response model"""
    ok: bool = Field(False, description="Request success status")
    error: str = Field(..., description="Error message")
    error_type: Optional[str] = Field(None, description="Error type")
    timestamp: datetime = Field(..., description="Error timestamp")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
