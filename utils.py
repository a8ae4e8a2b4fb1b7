"""
Utility functions for building, running and measuring sequence pipelines.

Pipelines arrive as ``models.PipelineRequest`` objects (for example from the
HTTP API); this module turns them into ``Sequence`` chains, drives the
consumer and records timing and memory metrics.
"""

import time
import gc
import os
import logging
import tracemalloc
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import (
    ConsumerSpec, ConsumerType, EngineSettings, OperationSpec, OperationType,
    PipelineRequest, SourceSpec, SourceType,
)
from sequence import Sequence, set_materialize_limit
from sources import (
    char_range, count_from, fahrenheit_table, from_collection, range_of,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class PipelineDefinitionError(ValueError):
    """Raised when a pipeline description cannot be turned into a sequence."""
    pass


# Names a pipeline lambda may use besides its own arguments
SAFE_BUILTINS = {
    "abs": abs, "round": round, "min": min, "max": max, "len": len,
    "str": str, "int": int, "float": float, "bool": bool, "divmod": divmod,
}

_settings = EngineSettings()

# Global performance tracking
_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "total_memory_mb": 0.0,
    "operation_count": 0
}


# --------- configuration ----------
def load_settings(environ: Optional[Dict[str, str]] = None) -> EngineSettings:
    """Read SEQUENCE_* variables into an EngineSettings instance"""
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    limit = env.get("SEQUENCE_MATERIALIZE_LIMIT", "").strip()
    if limit:
        values["materialize_limit"] = int(limit)
    if env.get("SEQUENCE_LOG_LEVEL"):
        values["log_level"] = env["SEQUENCE_LOG_LEVEL"]
    if env.get("SEQUENCE_MAX_PREVIEW"):
        values["max_preview"] = int(env["SEQUENCE_MAX_PREVIEW"])
    return EngineSettings(**values)


def configure(settings: EngineSettings) -> EngineSettings:
    """Install settings process-wide (engine limit + log level)"""
    global _settings
    _settings = settings
    set_materialize_limit(settings.materialize_limit)
    logging.getLogger().setLevel(settings.log_level)
    logger.info(
        f"Engine configured: materialize_limit={settings.materialize_limit}, "
        f"log_level={settings.log_level}"
    )
    return settings


def get_settings() -> EngineSettings:
    return _settings


# --------- performance metrics ----------
def _record(performance_info: Dict[str, Any]):
    _performance_metrics["operations"].append(performance_info)
    _performance_metrics["total_time_ms"] += performance_info["execution_time_ms"]
    _performance_metrics["total_memory_mb"] += performance_info["memory_usage_mb"]
    _performance_metrics["operation_count"] += 1


def measure_performance(operation_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    """Measure performance of a function call with memory tracking"""

    tracemalloc.start()
    gc.collect()
    start_time = time.perf_counter()

    try:
        result = func(*args, **kwargs)

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        current, peak = tracemalloc.get_traced_memory()

        performance_info = {
            "operation": operation_name,
            "execution_time_ms": execution_time_ms,
            "memory_usage_mb": peak / 1024 / 1024,
            "success": True,
            "result_size": len(result) if hasattr(result, "__len__") else None,
            "timestamp": time.time()
        }
        _record(dict(performance_info))
        performance_info["result"] = result
        return performance_info

    except Exception as e:
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        current, peak = tracemalloc.get_traced_memory()

        _record({
            "operation": operation_name,
            "execution_time_ms": execution_time_ms,
            "memory_usage_mb": peak / 1024 / 1024,
            "success": False,
            "error": str(e),
            "timestamp": time.time()
        })
        raise

    finally:
        tracemalloc.stop()


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    if _performance_metrics["operation_count"] == 0:
        return {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }

    return {
        "total_operations": _performance_metrics["operation_count"],
        "total_time_ms": _performance_metrics["total_time_ms"],
        "total_memory_mb": _performance_metrics["total_memory_mb"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / _performance_metrics["operation_count"],
        "avg_memory_mb": _performance_metrics["total_memory_mb"] / _performance_metrics["operation_count"]
    }


def clear_performance_metrics():
    """Clear all performance metrics"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "total_memory_mb": 0.0,
        "operation_count": 0
    }


# --------- pipeline construction ----------
def compile_function(expression: str) -> Callable:
    """Evaluate a lambda expression with a restricted set of builtins"""
    if "__" in expression:
        raise PipelineDefinitionError(f"Dunder names are not allowed: {expression!r}")
    try:
        func = eval(expression, {"__builtins__": SAFE_BUILTINS}, {})
    except SyntaxError as e:
        raise PipelineDefinitionError(f"Invalid function {expression!r}: {e.msg}") from e
    if not callable(func):
        raise PipelineDefinitionError(f"Expression is not callable: {expression!r}")
    return func


def build_source(spec: SourceSpec) -> Sequence:
    """Create the source sequence described by spec"""
    if spec.type == SourceType.RANGE:
        step = 1 if spec.step is None else spec.step
        return range_of(spec.start, spec.end, inclusive=spec.inclusive, step=step)

    elif spec.type == SourceType.COUNT_FROM:
        start = 0 if spec.start is None else spec.start
        step = 1 if spec.step is None else spec.step
        return count_from(start, step)

    elif spec.type == SourceType.CHARS:
        return char_range(spec.first, spec.last)

    elif spec.type == SourceType.COLLECTION:
        return from_collection(list(spec.items), mode=spec.mode.value)

    elif spec.type == SourceType.FAHRENHEIT:
        start = 0.0 if spec.start is None else spec.start
        step = 5.0 if spec.step is None else spec.step
        return fahrenheit_table(start, step)

    raise PipelineDefinitionError(f"Unknown source: {spec.type}")


def apply_operation(seq: Sequence, op: OperationSpec) -> Sequence:
    """Wrap seq in the adaptor described by op"""
    op_type = op.type
    func = compile_function(op.function) if op.function else None

    if op_type == OperationType.MAP:
        return seq.map(func)

    elif op_type == OperationType.FILTER:
        return seq.filter(func)

    elif op_type == OperationType.FILTER_MAP:
        return seq.filter_map(func)

    elif op_type == OperationType.REV:
        return seq.rev()

    elif op_type == OperationType.CHAIN:
        return seq.chain(build_source(op.other))

    elif op_type == OperationType.ZIP:
        return seq.zip(build_source(op.other))

    elif op_type == OperationType.ENUMERATE:
        return seq.enumerate(op.start)

    elif op_type == OperationType.STEP_BY:
        return seq.step_by(op.count)

    elif op_type == OperationType.TAKE:
        return seq.take(op.count)

    elif op_type == OperationType.TAKE_WHILE:
        return seq.take_while(func)

    elif op_type == OperationType.SKIP:
        return seq.skip(op.count)

    elif op_type == OperationType.INSPECT:
        return seq.inspect(func)

    elif op_type == OperationType.UNIQUE:
        return seq.unique(func)

    elif op_type == OperationType.DEDUP:
        return seq.dedup()

    elif op_type == OperationType.SORTED:
        return seq.sorted(key=func, reverse=op.reverse)

    elif op_type == OperationType.SORTED_BY:
        return seq.sorted_by(func)

    elif op_type == OperationType.BATCH:
        return seq.batch(op.count)

    elif op_type == OperationType.PAGE:
        return seq.page(op.page_number, op.page_size)

    raise PipelineDefinitionError(f"Unknown op: {op_type}")


def run_consumer(seq: Sequence, consumer: ConsumerSpec) -> Any:
    """Drive seq with the consumer described by consumer"""
    kind = consumer.type
    func = compile_function(consumer.function) if consumer.function else None

    if kind == ConsumerType.COLLECT:
        return seq.collect()
    elif kind == ConsumerType.COUNT:
        return seq.count()
    elif kind == ConsumerType.SUM:
        return seq.sum(0 if consumer.initial is None else consumer.initial)
    elif kind == ConsumerType.FOLD:
        return seq.fold(consumer.initial, func)
    elif kind == ConsumerType.REDUCE:
        if consumer.initial is None:
            return seq.reduce(func)
        return seq.reduce(func, consumer.initial)
    elif kind == ConsumerType.MIN:
        return seq.min(key=func)
    elif kind == ConsumerType.MAX:
        return seq.max(key=func)
    elif kind == ConsumerType.MINMAX:
        return seq.minmax(key=func)
    elif kind == ConsumerType.FIND:
        return seq.find(func)
    elif kind == ConsumerType.FIND_MAP:
        return seq.find_map(func)
    elif kind == ConsumerType.POSITION:
        return seq.position(func)
    elif kind == ConsumerType.ANY:
        return seq.any(func)
    elif kind == ConsumerType.ALL:
        return seq.all(func)
    elif kind == ConsumerType.FIRST:
        return seq.first()
    elif kind == ConsumerType.LAST:
        return seq.last()
    elif kind == ConsumerType.NTH:
        return seq.nth(consumer.n)
    elif kind == ConsumerType.PARTITION:
        return seq.partition(func)
    elif kind == ConsumerType.GROUP_BY:
        return seq.group_by(func)
    elif kind == ConsumerType.JOIN:
        return seq.join(consumer.separator)

    raise PipelineDefinitionError(f"Unknown consumer: {kind}")


def build_pipeline(request: PipelineRequest) -> Tuple[Sequence, List[str]]:
    """Create the source and apply every operation, without pulling anything"""
    seq = build_source(request.source)
    operations_applied = []
    for op in request.operations:
        seq = apply_operation(seq, op)
        operations_applied.append(op.type.value)
    return seq, operations_applied


def to_jsonable(value: Any) -> Any:
    """Turn tuples into lists and dict keys into strings for JSON output"""
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    return value


def run_pipeline(request: PipelineRequest) -> Dict[str, Any]:
    """Build, consume and measure a pipeline. Errors propagate to the caller."""
    seq, operations_applied = build_pipeline(request)
    label = "->".join([request.source.type.value] + operations_applied + [request.consumer.type.value])

    try:
        performance = measure_performance(label, run_consumer, seq, request.consumer)
    except Exception as e:
        logger.error(f"Pipeline {label} failed: {e}")
        raise

    result = performance["result"]
    logger.info(f"Pipeline {label} finished in {performance['execution_time_ms']:.2f} ms")

    return {
        "result": to_jsonable(result),
        "operations_applied": operations_applied,
        "consumer": request.consumer.type.value,
        "performance": {
            "processing_time_ms": performance["execution_time_ms"],
            "memory_usage_mb": performance["memory_usage_mb"],
            "output_size": performance["result_size"],
            "operation": label
        }
    }


# --------- tutorial walkthrough ----------
TUTORIAL_EXAMPLES: Dict[str, Tuple[str, Callable[[], Any]]] = {
    "basic_range": (
        "Basic range (exclusive on the right)",
        lambda: range_of(1, 11).collect()
    ),
    "inclusive_squares": (
        "Inclusive range paired with squares",
        lambda: range_of(1, 10, inclusive=True).map(lambda i: (i, i * i)).collect()
    ),
    "step_by": (
        "Range with step",
        lambda: range_of(0, 11).step_by(2).collect()
    ),
    "filter_even": (
        "Same as step_by using a filter closure",
        lambda: range_of(0, 11).filter(lambda x: x % 2 == 0).collect()
    ),
    "reverse_inclusive": (
        "Reverse inclusive range",
        lambda: range_of(1, 10, inclusive=True).rev().collect()
    ),
    "reverse_filter": (
        "Reverse range with a filter",
        lambda: range_of(-10, 11).rev().filter(lambda x: x % 3 == 0).collect()
    ),
    "divisible_by_six": (
        "Numbers divisible by both 2 and 3",
        lambda: range_of(0, 21).filter(lambda x: x % 2 == 0 and x % 3 == 0).collect()
    ),
    "chain_rev": (
        "Multiples of five chained with a reversed range",
        lambda: range_of(1, 20).filter(lambda x: x % 5 == 0).chain(range_of(6, 9).rev()).collect()
    ),
    "squares_divisible_by_five": (
        "First ten squares divisible by five, from an unbounded range",
        lambda: count_from(1).map(lambda x: x * x).filter(lambda x: x % 5 == 0).take(10).collect()
    ),
    "fahrenheit": (
        "Custom generator: Fahrenheit to Celsius table",
        lambda: fahrenheit_table(0.0, 5.0).take(5).map(lambda row: (row[0], round(row[1], 2))).collect()
    ),
    "enumerate": (
        "Index/value pairs of a vector",
        lambda: from_collection(list(range(1, 11))).enumerate().collect()
    ),
    "sorted_dedup": (
        "Sort and dedup a vector",
        lambda: from_collection([1, 4, 2, 3, 3, 2, 5, 1]).sorted().dedup().collect()
    ),
    "minmax": (
        "Min and max of a vector in one pass",
        lambda: from_collection([1, 4, 2, 3, 3, 2, 5, 1]).minmax()
    ),
    "alphabet": (
        "Character range joined into a string",
        lambda: char_range("a", "z").join()
    ),
}


def run_example(name: str) -> Dict[str, Any]:
    """Evaluate one of the walkthrough pipelines by name"""
    if name not in TUTORIAL_EXAMPLES:
        raise KeyError(name)
    description, factory = TUTORIAL_EXAMPLES[name]
    return {"name": name, "description": description, "result": to_jsonable(factory())}
