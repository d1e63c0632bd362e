"""
Engine build state management.
Tracks the engine lifecycle, per-stage progress of the running build, the last
build error, and the single pending refresh queued behind a running build.
"""

from datetime import datetime
from enum import Enum
import threading
from typing import Any, Dict, Optional

from common.constants import PATHS
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["app_log_file"])

STAGE_NAMES = ["stage_1_snapshot", "stage_2_features", "stage_3_similarity", "stage_4_training"]

_NO_PENDING = object()


class EngineStatus(str, Enum):
    """Engine lifecycle: UNINITIALIZED -> BUILDING -> READY (-> BUILDING -> READY ...)."""
    UNINITIALIZED = "uninitialized"
    BUILDING = "building"
    READY = "ready"


class StageStatus(str, Enum):
    """Individual stage status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BuildStateManager:
    """
    Manages engine build state.
    Written by the build routine, read by query routines and the status endpoint.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.status = EngineStatus.UNINITIALIZED
        self.generation = 0  # last generation handed out
        self.start_time: Optional[datetime] = None
        self.finish_time: Optional[datetime] = None
        self.stages = {name: self._blank_stage() for name in STAGE_NAMES}
        self.last_error: Optional[str] = None
        self.builds_completed = 0
        self.builds_failed = 0
        self._pending_catalog: Any = _NO_PENDING

    @staticmethod
    def _blank_stage() -> Dict[str, Any]:
        return {"status": StageStatus.PENDING.value, "elapsed_seconds": 0.0}

    def try_begin_build(self, catalog: Any) -> Optional[int]:
        """
        Claim the build slot. Returns the new generation number, or None when a build
        is already running, in which case `catalog` replaces any queued one.
        """
        with self.lock:
            if self.status == EngineStatus.BUILDING:
                replaced = self._pending_catalog is not _NO_PENDING
                self._pending_catalog = catalog
                logger.info(f"Build in progress, refresh queued (replaced earlier pending: {replaced})")
                return None
            return self._begin_locked()

    def take_pending(self) -> Any:
        """
        Called by the running build when it finishes. Returns (generation, catalog) for the
        queued refresh, keeping the engine in BUILDING, or None after moving to READY.
        """
        with self.lock:
            if self._pending_catalog is _NO_PENDING:
                self.status = EngineStatus.READY
                self.finish_time = datetime.now()
                return None
            catalog = self._pending_catalog
            self._pending_catalog = _NO_PENDING
            return self._begin_locked(), catalog

    def _begin_locked(self) -> int:
        self.status = EngineStatus.BUILDING
        self.generation += 1
        self.start_time = datetime.now()
        self.finish_time = None
        for stage_name in self.stages:
            self.stages[stage_name] = self._blank_stage()
        logger.info(f"Build {self.generation} started")
        return self.generation

    def _elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    def update_stage_status(self, stage_name: str, status: StageStatus) -> None:
        """Update progress for a specific stage."""
        with self.lock:
            if stage_name not in self.stages:
                logger.warning(f"Unknown stage: {stage_name}")
                return
            self.stages[stage_name] = {"status": status.value, "elapsed_seconds": round(self._elapsed(), 3)}
            logger.debug(f"Updated {stage_name}: {status.value}")

    def start_stage(self, stage_name: str) -> None:
        self.update_stage_status(stage_name, StageStatus.RUNNING)

    def complete_stage(self, stage_name: str) -> None:
        self.update_stage_status(stage_name, StageStatus.COMPLETED)

    def fail_stage(self, stage_name: str, error_msg: str) -> None:
        self.update_stage_status(stage_name, StageStatus.FAILED)
        logger.error(f"Stage {stage_name} failed: {error_msg}")

    def complete_build(self, generation: int) -> None:
        with self.lock:
            self.last_error = None
            self.builds_completed += 1
            logger.info(f"Build {generation} completed in {self._elapsed():.2f}s")

    def fail_build(self, generation: int, error_msg: str) -> None:
        """Record the error; the engine still ends up READY (degraded), never back to UNINITIALIZED."""
        with self.lock:
            self.last_error = error_msg
            self.builds_failed += 1
            logger.error(f"Build {generation} failed: {error_msg}")

    def record_error(self, error_msg: str) -> None:
        with self.lock:
            self.last_error = error_msg

    def is_building(self) -> bool:
        with self.lock:
            return self.status == EngineStatus.BUILDING

    def has_pending(self) -> bool:
        with self.lock:
            return self._pending_catalog is not _NO_PENDING

    def get_status(self) -> Dict[str, Any]:
        """Get current build status as dictionary."""
        with self.lock:
            return {
                "status": self.status.value,
                "generation": self.generation,
                "current_stage": self._get_current_running_stage(),
                "stages": {name: dict(data) for name, data in self.stages.items()},
                "last_error": self.last_error,
                "builds_completed": self.builds_completed,
                "builds_failed": self.builds_failed,
                "pending_refresh": self._pending_catalog is not _NO_PENDING,
                "started_at": self.start_time.isoformat() if self.start_time else None,
                "finished_at": self.finish_time.isoformat() if self.finish_time else None,
            }

    def _get_current_running_stage(self) -> Optional[str]:
        """Return the name of the currently running stage, if any."""
        for stage_name, stage_data in self.stages.items():
            if stage_data["status"] == StageStatus.RUNNING.value:
                return stage_name
        return None
