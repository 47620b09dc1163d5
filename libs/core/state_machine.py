from __future__ import annotations

from typing import Dict, Set

from .models import PipelineState

PIPELINE_TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
    PipelineState.validating: {PipelineState.scoring, PipelineState.failed},
    PipelineState.scoring: {PipelineState.revising, PipelineState.failed},
    PipelineState.revising: {PipelineState.writing, PipelineState.failed},
    PipelineState.writing: {PipelineState.done, PipelineState.failed},
    PipelineState.done: set(),
    PipelineState.failed: set(),
}

TERMINAL_STATES = {PipelineState.done, PipelineState.failed}


class InvalidTransitionError(Exception):
    pass


def validate_pipeline_transition(current: PipelineState, new: PipelineState) -> bool:
    return new in PIPELINE_TRANSITIONS.get(current, set())


def advance(current: PipelineState, new: PipelineState) -> PipelineState:
    if not validate_pipeline_transition(current, new):
        raise InvalidTransitionError(f"invalid_transition:{current.value}->{new.value}")
    return new
