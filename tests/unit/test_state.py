import pytest

from queryproc.pipeline.state import InvalidTransitionError, ProcessingState, RequestLifecycle


def test_happy_path_visits_every_stage_in_order():
    # Validates the lifecycle because every request passes the same stages.
    # Arrange
    lifecycle = RequestLifecycle()
    stages = [
        ProcessingState.COMPILING,
        ProcessingState.EXECUTING,
        ProcessingState.NORMALIZING,
        ProcessingState.ASSEMBLING,
        ProcessingState.COMPLETED,
    ]

    # Act
    for stage in stages:
        lifecycle.advance(stage)

    # Assert
    assert lifecycle.history == [ProcessingState.RECEIVED] + stages
    assert lifecycle.state.is_terminal


def test_skipping_a_stage_is_rejected():
    # Validates transitions because results must never skip normalization.
    # Arrange
    lifecycle = RequestLifecycle()
    lifecycle.advance(ProcessingState.COMPILING)
    lifecycle.advance(ProcessingState.EXECUTING)

    # Act / Assert
    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(ProcessingState.ASSEMBLING)


def test_fail_reports_the_failing_stage():
    # Validates failure tracking because errors are reported with the stage they hit.
    # Arrange
    lifecycle = RequestLifecycle()
    lifecycle.advance(ProcessingState.COMPILING)

    # Act
    stage = lifecycle.fail()

    # Assert
    assert stage == ProcessingState.COMPILING
    assert lifecycle.state == ProcessingState.FAILED


def test_terminal_states_accept_no_transitions():
    # Validates terminal states because a finished request cannot be resumed.
    # Arrange
    lifecycle = RequestLifecycle()
    lifecycle.fail()

    # Act / Assert
    with pytest.raises(InvalidTransitionError):
        lifecycle.advance(ProcessingState.COMPILING)
    assert lifecycle.fail() == ProcessingState.FAILED
