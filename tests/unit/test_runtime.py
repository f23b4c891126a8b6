from unittest.mock import MagicMock

import pytest

from queryproc.common.cancellation import CancellationToken
from queryproc.common.errors import BackendConnectionError, ExecutionError, QueryCancelledError
from queryproc.common.logger import current_trace_id
from queryproc.databases.registry import DatabaseRegistry
from queryproc.drivers.interfaces import RawColumn, RawResult
from queryproc.pipeline.contracts import QueryRequest
from queryproc.pipeline.runtime import QueryProcessor


def _count_result(value=100):
    return RawResult(columns=[RawColumn(name="count")], rows=[[value]])


@pytest.fixture
def adapter(sql_caps):
    mock_adapter = MagicMock()
    mock_adapter.capabilities = sql_caps
    mock_adapter.execute.return_value = _count_result()
    return mock_adapter


@pytest.fixture
def processor(catalog, adapter, fast_settings):
    registry = DatabaseRegistry(catalog=catalog, settings=fast_settings)
    registry.register(1, adapter, key="venues-db")
    with QueryProcessor(registry, settings=fast_settings) as qp:
        yield qp


def _count_request(ids, **extra):
    return {"database": 1, "type": "query", "query": {"source_table": ids["venues"], "aggregation": ["count"]}, **extra}


def test_successful_query_produces_completed_envelope(processor, adapter, ids):
    # Validates the happy path because every stage must contribute to the envelope.
    # Act
    envelope = processor.process(_count_request(ids))

    # Assert
    assert envelope.status == "completed"
    assert envelope.row_count == 1
    assert envelope.data.rows == [[100]]
    assert envelope.data.cols[0].special_type.value == "number"
    adapter.execute.assert_called_once()


def test_request_model_is_accepted(processor, ids):
    # Validates typed requests because embedders may build QueryRequest directly.
    # Arrange
    request = QueryRequest(database_id=1, query={"source_table": ids["venues"], "aggregation": ["count"]})

    # Act
    envelope = processor.process(request)

    # Assert
    assert envelope.succeeded


def test_unknown_database_is_reported(processor, ids):
    # Validates database lookup because unbound ids must fail cleanly.
    # Act
    envelope = processor.process({"database": 9, "query": {"source_table": ids["venues"]}})

    # Assert
    assert envelope.status == "failed"
    assert envelope.error.kind == "unknown_reference"
    assert envelope.data is None


def test_malformed_request_is_invalid_query(processor):
    # Validates request parsing because a request without a database cannot be routed.
    # Act
    envelope = processor.process({"type": "query", "query": {"source_table": 1}})

    # Assert
    assert envelope.error.kind == "invalid_query"


def test_unsupported_request_type_is_invalid_query(processor, ids):
    # Validates the request type because only "query" requests are processed.
    # Act
    envelope = processor.process(_count_request(ids, type="native"))

    # Assert
    assert envelope.error.kind == "invalid_query"


def test_malformed_query_fails_before_execution(processor, adapter):
    # Validates compile-time failure because invalid queries must never reach a backend.
    # Act
    envelope = processor.process({"database": 1, "query": {"aggregation": ["count"]}})

    # Assert
    assert envelope.error.kind == "invalid_query"
    adapter.execute.assert_not_called()


def test_transient_connection_failure_is_retried(processor, adapter, ids):
    # Validates retry wiring because a dropped connection should not fail the request.
    # Arrange
    adapter.execute.side_effect = [BackendConnectionError("reset by peer"), _count_result(7)]

    # Act
    envelope = processor.process(_count_request(ids))

    # Assert
    assert envelope.succeeded
    assert envelope.data.rows == [[7]]
    assert adapter.execute.call_count == 2


def test_backend_rejection_is_execution_error(processor, adapter, ids):
    # Validates error mapping because a rejected plan is reported, not retried.
    # Arrange
    adapter.execute.side_effect = ExecutionError("no such table: venues")

    # Act
    envelope = processor.process(_count_request(ids))

    # Assert
    assert envelope.error.kind == "execution_error"
    assert envelope.error.message == "no such table: venues"
    assert adapter.execute.call_count == 1


def test_unexpected_exception_is_unknown_error(processor, adapter, ids):
    # Validates the crash path because one bad driver must not take down the caller.
    # Arrange
    adapter.execute.side_effect = RuntimeError("driver bug")

    # Act
    envelope = processor.process(_count_request(ids))

    # Assert
    assert envelope.error.kind == "unknown_error"
    assert "driver bug" in envelope.error.message


def test_deadline_cancels_running_execution(processor, adapter, ids):
    # Validates the timeout because a slow backend must not hold the caller past its deadline.
    # Arrange
    seen_tokens = []

    def slow_execute(compiled, token):
        seen_tokens.append(token)
        token.wait(5)
        raise QueryCancelledError(reason=token.reason or "cancelled")

    adapter.execute.side_effect = slow_execute

    # Act
    envelope = processor.process(_count_request(ids), timeout_sec=0.1)

    # Assert
    assert envelope.error.kind == "cancelled"
    assert "timed out" in envelope.error.message
    assert seen_tokens and seen_tokens[0].reason == "timeout"


def test_cancelled_token_stops_the_request(processor, ids):
    # Validates caller cancellation because a cancelled request must not return data.
    # Arrange
    token = CancellationToken()
    token.cancel()

    # Act
    envelope = processor.process(_count_request(ids), cancel_token=token)

    # Assert
    assert envelope.status == "failed"
    assert envelope.error.kind == "cancelled"


def test_column_mismatch_fails_normalization(processor, adapter, ids):
    # Validates result checking because a driver returning the wrong shape is a bug.
    # Arrange
    adapter.execute.return_value = RawResult(columns=[RawColumn(name="total")], rows=[[1]])

    # Act
    envelope = processor.process(_count_request(ids))

    # Assert
    assert envelope.error.kind == "execution_error"


def test_trace_id_reaches_execution_thread(processor, adapter, ids):
    # Validates trace propagation because driver logs must correlate with the request.
    # Arrange
    seen = []

    def traced_execute(compiled, token):
        seen.append(current_trace_id())
        return _count_result()

    adapter.execute.side_effect = traced_execute

    # Act
    envelope = processor.process(_count_request(ids, trace_id="trace-123"))

    # Assert
    assert envelope.succeeded
    assert seen == ["trace-123"]
