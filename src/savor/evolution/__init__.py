"""
Evolution module - The draft, edit, diff, analyze, commit loop.

Exports the pipeline, its cycle state, the worker pool and the rules merge.
"""

from .pipeline import BOOTSTRAP_SUMMARY, EvolutionPipeline
from .rules import merge_rules, parse_analysis
from .state import CycleCancelledError, CycleState, EvolutionCycle, InvalidTransitionError
from .workers import PipelineJob, PipelineWorkers

__all__ = [
    "BOOTSTRAP_SUMMARY",
    "CycleCancelledError",
    "CycleState",
    "EvolutionCycle",
    "EvolutionPipeline",
    "InvalidTransitionError",
    "PipelineJob",
    "PipelineWorkers",
    "merge_rules",
    "parse_analysis",
]
