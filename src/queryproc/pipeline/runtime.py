from __future__ import annotations

import concurrent.futures
import contextvars
import time
import uuid
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from queryproc.common.cancellation import CancellationToken
from queryproc.common.errors import (
    ErrorCode,
    InvalidQueryError,
    QueryCancelledError,
    QueryProcessorError,
)
from queryproc.common.logger import get_logger, trace_context
from queryproc.common.metrics import record_query
from queryproc.common.resilience import call_with_retry, get_breaker
from queryproc.common.settings import Settings, settings as default_settings
from queryproc.databases.registry import DatabaseBinding, DatabaseRegistry
from queryproc.drivers.interfaces import RawResult
from queryproc.pipeline.assembler import ResultAssembler
from queryproc.pipeline.contracts import QueryRequest, ResultEnvelope
from queryproc.pipeline.normalizer import TypeNormalizer
from queryproc.pipeline.state import ProcessingState, RequestLifecycle
from queryproc.query.compiled import CompiledQuery
from queryproc.query.compiler import QueryCompiler
from queryproc.query.models import QueryDescription

logger = get_logger(__name__)


class QueryProcessor:
    """
    Runs structured queries against registered databases.

    Compilation and normalization run inline on the caller's thread. Execution
    runs on a shared worker pool; the caller polls it so a cancellation token
    or the deadline can stop it. The processor keeps no per-request state.
    """

    def __init__(
        self,
        registry: DatabaseRegistry,
        settings: Optional[Settings] = None,
        compiler: Optional[QueryCompiler] = None,
        normalizer: Optional[TypeNormalizer] = None,
        assembler: Optional[ResultAssembler] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.registry = registry
        self.settings = settings or default_settings
        self.compiler = compiler or QueryCompiler()
        self.normalizer = normalizer or TypeNormalizer()
        self.assembler = assembler or ResultAssembler()
        self._owns_executor = executor is None
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=self.settings.execution_workers,
            thread_name_prefix="queryproc-exec",
        )

    def __enter__(self) -> "QueryProcessor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def process(
        self,
        request: Union[QueryRequest, Mapping[str, Any]],
        cancel_token: Optional[CancellationToken] = None,
        timeout_sec: Optional[float] = None,
    ) -> ResultEnvelope:
        """Processes one request and returns its envelope. Never raises for query failures.

        Args:
            request: A ``QueryRequest`` or its mapping form.
            cancel_token: Token the caller may cancel to abort execution.
            timeout_sec: Execution deadline; defaults to ``QUERY_TIMEOUT_SEC``.
        """
        start = time.monotonic()
        lifecycle = RequestLifecycle()
        token = cancel_token or CancellationToken()
        timeout = timeout_sec if timeout_sec is not None else self.settings.query_timeout_sec
        driver = "unknown"
        status = "failed"

        trace_id = _trace_id_of(request)
        with trace_context(trace_id):
            try:
                req = self._parse_request(request)
                binding = self.registry.get(req.database_id)
                driver = binding.capabilities.driver

                lifecycle.advance(ProcessingState.COMPILING)
                query = QueryDescription.parse(req.query)
                compiled = self.compiler.compile(
                    query, binding.capabilities, binding.catalog, binding.database_id
                )

                lifecycle.advance(ProcessingState.EXECUTING)
                raw = self._execute(binding, compiled, token, timeout)

                lifecycle.advance(ProcessingState.NORMALIZING)
                cols = self.normalizer.normalize(raw.columns, compiled, binding.catalog, binding.capabilities)

                lifecycle.advance(ProcessingState.ASSEMBLING)
                envelope = self.assembler.assemble(raw.rows, cols, compiled.warnings)

                lifecycle.advance(ProcessingState.COMPLETED)
                status = envelope.status
                logger.info(
                    f"Query on database {req.database_id} completed with {envelope.row_count} rows "
                    f"in {time.monotonic() - start:.3f}s"
                )
                return envelope
            except QueryProcessorError as e:
                stage = lifecycle.fail()
                error = e.to_processing_error(stage.value)
                if isinstance(e, QueryCancelledError):
                    logger.info(f"Query cancelled during {stage.value} ({e.reason}): {e.message}")
                else:
                    logger.error(f"Query failed during {stage.value} [{error.error_code.value}]: {e.message}")
                return ResultEnvelope.failed(error.kind, error.message)
            except Exception as e:
                stage = lifecycle.fail()
                logger.exception(f"Query processing crashed during {stage.value}")
                return ResultEnvelope.failed(
                    ErrorCode.UNKNOWN_ERROR.value.lower(), f"Query processing crashed: {e}"
                )
            finally:
                record_query(driver, status, time.monotonic() - start)

    def _parse_request(self, request: Union[QueryRequest, Mapping[str, Any]]) -> QueryRequest:
        if isinstance(request, QueryRequest):
            req = request
        else:
            try:
                req = QueryRequest.model_validate(request)
            except ValidationError as e:
                raise InvalidQueryError(f"Invalid request: {e}") from e
        if req.type != "query":
            raise InvalidQueryError(f"Unsupported request type {req.type!r}")
        return req

    def _execute(
        self,
        binding: DatabaseBinding,
        compiled: CompiledQuery,
        token: CancellationToken,
        timeout_sec: float,
    ) -> RawResult:
        breaker = get_breaker(
            binding.key,
            fail_max=self.settings.breaker_fail_max,
            reset_timeout=self.settings.breaker_reset_timeout_sec,
        )

        def _invoke() -> RawResult:
            return call_with_retry(
                lambda: binding.adapter.execute(compiled, token),
                breaker,
                retries=self.settings.connection_retries,
                backoff_sec=self.settings.retry_backoff_sec,
                cancel_token=token,
            )

        # Carry the trace id into the worker thread.
        future = self._executor.submit(contextvars.copy_context().run, _invoke)
        deadline = time.monotonic() + timeout_sec
        while True:
            if token.is_cancelled():
                future.cancel()
                raise QueryCancelledError(reason=token.reason or "cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                token.cancel("timeout")
                future.cancel()
                raise QueryCancelledError(
                    f"Query execution timed out after {timeout_sec} seconds.", reason="timeout"
                )
            try:
                return future.result(timeout=min(self.settings.poll_interval_sec, remaining))
            except concurrent.futures.TimeoutError:
                continue


def _trace_id_of(request: Union[QueryRequest, Mapping[str, Any]]) -> str:
    if isinstance(request, QueryRequest):
        trace_id = request.trace_id
    elif isinstance(request, Mapping):
        trace_id = request.get("trace_id")
    else:
        trace_id = None
    return trace_id or uuid.uuid4().hex
