import pytest

from libs.core import state_machine
from libs.core.models import PipelineState


def test_stages_advance_in_order():
    state = PipelineState.validating
    for new in (
        PipelineState.scoring,
        PipelineState.revising,
        PipelineState.writing,
        PipelineState.done,
    ):
        state = state_machine.advance(state, new)
    assert state == PipelineState.done


def test_every_active_state_can_fail():
    for state in (
        PipelineState.validating,
        PipelineState.scoring,
        PipelineState.revising,
        PipelineState.writing,
    ):
        assert state_machine.validate_pipeline_transition(state, PipelineState.failed)


def test_stage_cannot_be_skipped():
    assert not state_machine.validate_pipeline_transition(
        PipelineState.scoring, PipelineState.writing
    )
    with pytest.raises(state_machine.InvalidTransitionError):
        state_machine.advance(PipelineState.validating, PipelineState.done)


def test_terminal_states_have_no_exits():
    for state in state_machine.TERMINAL_STATES:
        assert state_machine.PIPELINE_TRANSITIONS[state] == set()
