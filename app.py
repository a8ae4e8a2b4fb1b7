"""FastAPI app that evaluates JSON-described lazy sequence pipelines."""

from contextlib import asynccontextmanager
from datetime import datetime

import psutil
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from models import (
    ErrorResponse, ExampleResponse, FahrenheitResponse, FahrenheitRow,
    HealthResponse, MetricsResponse, PipelineRequest, PipelineResponse,
    StatusResponse,
)
from sequence import SequenceError
from sources import fahrenheit_table
from utils import (
    TUTORIAL_EXAMPLES,
    PipelineDefinitionError,
    clear_performance_metrics,
    configure,
    get_performance_summary,
    get_settings,
    load_settings,
    logger,
    run_example,
    run_pipeline,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    configure(load_settings())
    logger.info("Sequence engine service started")
    yield
    logger.info("Sequence engine service stopped")


app = FastAPI(
    title="Lazy Sequence Engine",
    description="Composable, pull-based lazy sequences: sources, adaptors and consumers",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/", response_model=StatusResponse)
async def root():
    """Basic service banner."""
    return StatusResponse(
        ok=True,
        message="Lazy Sequence Engine operational - Features: ranges, adaptors, consumers, custom generators",
        timestamp=datetime.now()
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Return engine configuration and process memory."""
    rss = psutil.Process().memory_info().rss
    return HealthResponse(
        healthy=True,
        materialize_limit=get_settings().materialize_limit,
        memory_rss_mb=rss / 1024 / 1024,
        operations_recorded=get_performance_summary()["total_operations"],
        timestamp=datetime.now()
    )


@app.post("/pipeline", response_model=PipelineResponse)
def evaluate_pipeline(request: PipelineRequest):
    """
    Build the described pipeline, drive its consumer and return the result.

    Declared sync so FastAPI runs it in the threadpool: caller lambdas never
    block the event loop, even when a pipeline does not terminate.
    """
    try:
        outcome = run_pipeline(request)
    except (SequenceError, PipelineDefinitionError):
        raise
    except Exception as e:
        # user-supplied callables failing at pull time
        raise HTTPException(
            status_code=400,
            detail=f"Pipeline evaluation failed: {type(e).__name__}: {e}"
        )

    return PipelineResponse(
        ok=True,
        result=outcome["result"],
        operations_applied=outcome["operations_applied"],
        consumer=outcome["consumer"],
        performance=outcome["performance"],
        timestamp=datetime.now()
    )


@app.get("/examples")
async def list_examples():
    """List the built-in walkthrough pipelines."""
    return {
        "ok": True,
        "examples": {name: description for name, (description, _) in TUTORIAL_EXAMPLES.items()},
        "total_examples": len(TUTORIAL_EXAMPLES),
        "timestamp": datetime.now().isoformat()
    }


@app.get("/examples/{name}", response_model=ExampleResponse)
async def get_example(name: str):
    """Evaluate one walkthrough pipeline."""
    try:
        example = run_example(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown example: {name}")
    return ExampleResponse(timestamp=datetime.now(), **example)


@app.get("/fahrenheit", response_model=FahrenheitResponse)
async def fahrenheit(
    start: float = Query(0.0, description="First Fahrenheit value"),
    step: float = Query(5.0, description="Increment between rows"),
    limit: int = Query(10, ge=1, description="Number of rows"),
    precision: int = Query(2, ge=0, le=10, description="Decimals for Celsius")
):
    """Return the first rows of the Fahrenheit-to-Celsius table."""
    max_preview = get_settings().max_preview
    if limit > max_preview:
        raise HTTPException(
            status_code=400,
            detail=f"limit must be <= {max_preview}"
        )
    rows = (
        fahrenheit_table(start, step)
        .take(limit)
        .map(lambda row: FahrenheitRow(fahrenheit=row[0], celsius=round(row[1], precision)))
        .collect()
    )
    return FahrenheitResponse(start=start, step=step, limit=limit, rows=rows)


@app.get("/metrics", response_model=MetricsResponse)
async def metrics():
    """Aggregated pipeline performance metrics."""
    return MetricsResponse(**get_performance_summary())


@app.delete("/metrics", response_model=StatusResponse)
async def reset_metrics():
    """Clear recorded pipeline metrics."""
    clear_performance_metrics()
    return StatusResponse(ok=True, message="Metrics cleared", timestamp=datetime.now())


# Exception handlers for proper error responses
@app.exception_handler(SequenceError)
async def sequence_error_handler(request: Request, exc: SequenceError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=str(exc),
            error_type=type(exc).__name__,
            timestamp=datetime.now()
        ).to_json()
    )


@app.exception_handler(PipelineDefinitionError)
async def pipeline_definition_handler(request: Request, exc: PipelineDefinitionError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=str(exc),
            error_type="PipelineDefinitionError",
            timestamp=datetime.now()
        ).to_json()
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
