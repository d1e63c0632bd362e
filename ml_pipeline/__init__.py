"""
ML Pipeline - snapshot build workflow.

Simple functions for each build stage: catalog -> features -> similarity -> model.
"""

from ml_pipeline.handler import (
    run_stage_1_snapshot,
    run_stage_2_features,
    run_stage_3_similarity,
    run_stage_4_training,
    build_context,
    raw_context,
    STAGES,
)

__all__ = [
    "run_stage_1_snapshot",
    "run_stage_2_features",
    "run_stage_3_similarity",
    "run_stage_4_training",
    "build_context",
    "raw_context",
    "STAGES",
]
