"""
Base Orchestrator

Abstract base class for the timeline orchestrators with built-in support for:
- Transaction boundaries (one commit per operation, rollback on failure)
- Execution tracing (ordered, timed steps per operation)
- Store failure translation (SQLAlchemy errors become StoreUnavailableError)

All orchestrators that write the timeline should extend this class.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from solarflow.utils.invariants import StoreUnavailableError
from solarflow.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

# Type variable for operation results
T = TypeVar('T')


class ExecutionStep:
    """Represents a single execution step in the trace"""
    def __init__(self, action: str, step_number: int):
        self.step = step_number
        self.action = action
        self.status = "in_progress"
        self.started_at = utcnow().isoformat()
        self.completed_at = None
        self.duration_ms = None
        self.details = {}
        self.error = None
        self._start_time = time.time()

    def complete(self, status: str = "success", details: Optional[Dict[str, Any]] = None):
        """Mark step as completed"""
        self.status = status
        self.completed_at = utcnow().isoformat()
        self.duration_ms = int((time.time() - self._start_time) * 1000)
        if details:
            self.details = details

    def fail(self, error: str, details: Optional[Dict[str, Any]] = None):
        """Mark step as failed"""
        self.status = "failed"
        self.completed_at = utcnow().isoformat()
        self.duration_ms = int((time.time() - self._start_time) * 1000)
        self.error = error
        if details:
            self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        result = {
            "step": self.step,
            "action": self.action,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }
        if self.details:
            result["details"] = self.details
        if self.error:
            result["error"] = self.error
        return result


class OrchestrationError(Exception):
    """Base exception for orchestration errors"""
    pass


class BaseOrchestrator(ABC):
    """
    Abstract base orchestrator with transactions and tracing.

    Subclasses must implement:
    - orchestrator_name: str property

    Usage:
        class MyOrchestrator(BaseOrchestrator):
            @property
            def orchestrator_name(self) -> str:
                return "my_orchestrator"

            def do_work(self, project_id):
                return self._run("do_work", project_id, lambda: ...)

        orchestrator = MyOrchestrator(db, actor="office")
        result = orchestrator.do_work(project_id)
        orchestrator.last_trace  # steps of the last operation
    """

    def __init__(self, db: Session, actor: Optional[str] = None):
        """
        Initialize base orchestrator.

        Args:
            db: Database session
            actor: Who performs the operations (recorded in the activity log)
        """
        self.db = db
        self.actor = actor
        self._start_time = None
        self._operation = None
        self._execution_steps: List[ExecutionStep] = []
        self._step_counter = 0
        self.last_trace: Optional[Dict[str, Any]] = None

    @property
    @abstractmethod
    def orchestrator_name(self) -> str:
        """
        Name of this orchestrator, used in traces and log lines.

        Returns:
            Orchestrator name (e.g., "timeline_reconciler")
        """
        pass

    def _run(
        self,
        operation: str,
        project_id: Optional[uuid.UUID],
        body: Callable[[], T],
        commit: bool = True,
    ) -> T:
        """
        Run one operation inside a transaction with step tracing.

        Executes in a fixed order:
        1. Reset the trace
        2. Run the body (which opens its own traced steps)
        3. Commit (unless commit=False, for read-only operations)
        4. On any failure roll back; SQLAlchemy failures are re-raised
           as StoreUnavailableError with the original chained

        Args:
            operation: Operation name for the trace
            project_id: Project the operation targets, if any
            body: Zero-argument callable doing the work

        Returns:
            Whatever the body returns

        Raises:
            StoreUnavailableError: If the store read or write fails
            InvariantViolationError: Propagated unchanged from the body
        """
        self._operation = operation
        self._start_time = time.time()
        self._execution_steps = []
        self._step_counter = 0

        try:
            result = body()
            if commit:
                with self._trace_step("commit"):
                    self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._finish_trace(project_id, error=str(e))
            logger.warning(
                "[%s] %s failed for project %s: store unavailable (%s)",
                self.orchestrator_name, operation, project_id, e,
            )
            raise StoreUnavailableError(operation, project_id) from e
        except Exception as e:
            self.db.rollback()
            self._finish_trace(project_id, error=str(e))
            raise

        self._finish_trace(project_id)
        return result

    def _finish_trace(self, project_id, error: Optional[str] = None):
        """Store the structured trace of the operation that just ran."""
        trace = {
            "orchestrator": self.orchestrator_name,
            "operation": self._operation,
            "project_id": str(project_id) if project_id is not None else None,
            "duration_ms": self.get_elapsed_time_ms(),
            "steps": [step.to_dict() for step in self._execution_steps],
            "result": "failed" if error else "success",
            "metadata": {
                "actor": self.actor,
                "total_steps": len(self._execution_steps),
            },
        }
        if error:
            trace["error"] = error
        self.last_trace = trace

    # Execution Tracing Methods

    @contextmanager
    def _trace_step(self, action: str):
        """
        Context manager for automatic step tracing.

        Usage:
            with self._trace_step("load_record"):
                record = store.get(project_id)
        """
        self._step_counter += 1
        step = ExecutionStep(action, self._step_counter)
        self._execution_steps.append(step)

        try:
            yield step
            step.complete()
        except Exception as e:
            step.fail(str(e))
            raise

    def log_step(
        self,
        action: str,
        status: str = "success",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Manually log an execution step.

        Args:
            action: Description of the action
            status: Status of the step (success, skipped, etc.)
            details: Additional details about the step
        """
        self._step_counter += 1
        step = ExecutionStep(action, self._step_counter)
        step.complete(status, details)
        self._execution_steps.append(step)

    # Utility Methods

    def get_elapsed_time_ms(self) -> int:
        """Get elapsed time since the operation started in milliseconds"""
        if self._start_time:
            return int((time.time() - self._start_time) * 1000)
        return 0
