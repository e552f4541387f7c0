"""
Fix Progress Tracker
Tracks a processing run step by step: which fixes are pending, running, done or failed
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class FixProgressTracker:
    """Tracks progress of the fix pipeline for one document"""

    def __init__(self, document_id: str):
        self.document_id = document_id
        self.current_step = 0
        self.steps: List[Dict[str, Any]] = []
        self.start_time = datetime.now()
        self.status = 'initializing'  # initializing, in_progress, completed, failed
        self.error: Optional[str] = None

    def add_step(self, step_name: str, description: str) -> int:
        """Register a step; returns its 1-based id"""
        self.steps.append({
            'id': len(self.steps) + 1,
            'name': step_name,
            'description': description,
            'status': 'pending',
            'startTime': None,
            'endTime': None,
            'duration': None,
            'changes': 0,
            'warnings': 0,
            'details': None,
            'error': None,
        })
        return len(self.steps)

    def _step(self, step_id: int) -> Optional[Dict[str, Any]]:
        if 0 < step_id <= len(self.steps):
            return self.steps[step_id - 1]
        logger.debug(f"[ProgressTracker] Ignoring unknown step id {step_id}")
        return None

    def _finish(self, step: Dict[str, Any], status: str) -> None:
        end = datetime.now()
        step['status'] = status
        step['endTime'] = end.isoformat()
        if step['startTime']:
            step['duration'] = (end - datetime.fromisoformat(step['startTime'])).total_seconds()

    def start_step(self, step_id: int) -> None:
        step = self._step(step_id)
        if step is None:
            return
        step['status'] = 'in_progress'
        step['startTime'] = datetime.now().isoformat()
        self.current_step = step_id
        self.status = 'in_progress'
        logger.info(f"[ProgressTracker] Step {step_id}/{len(self.steps)}: {step['name']} - STARTED")

    def complete_step(self, step_id: int, details: Optional[str] = None, changes: int = 0, warnings: int = 0) -> None:
        step = self._step(step_id)
        if step is None:
            return
        self._finish(step, 'completed')
        step['details'] = details
        step['changes'] = changes
        step['warnings'] = warnings
        logger.info(
            f"[ProgressTracker] Step {step_id}/{len(self.steps)}: {step['name']} - COMPLETED "
            f"({step['duration'] or 0:.2f}s, {changes} change(s), {warnings} warning(s))"
        )

    def fail_step(self, step_id: int, error: str) -> None:
        step = self._step(step_id)
        if step is None:
            return
        self._finish(step, 'failed')
        step['error'] = error
        logger.error(f"[ProgressTracker] Step {step_id}/{len(self.steps)}: {step['name']} - FAILED: {error}")

    def skip_step(self, step_id: int, reason: str) -> None:
        step = self._step(step_id)
        if step is None:
            return
        step['status'] = 'skipped'
        step['details'] = reason
        logger.info(f"[ProgressTracker] Step {step_id}/{len(self.steps)}: {step['name']} - SKIPPED: {reason}")

    def complete_all(self) -> None:
        self.status = 'completed'
        total_duration = (datetime.now() - self.start_time).total_seconds()
        logger.info(f"[ProgressTracker] All steps completed in {total_duration:.2f}s")

    def fail_all(self, error: str) -> None:
        self.status = 'failed'
        self.error = error
        logger.error(f"[ProgressTracker] Processing failed: {error}")

    def get_progress(self) -> Dict[str, Any]:
        """Snapshot of the current state, camelCase keys for JSON consumers"""
        completed_steps = sum(1 for step in self.steps if step['status'] == 'completed')
        failed_steps = sum(1 for step in self.steps if step['status'] == 'failed')
        finished_steps = sum(1 for step in self.steps if step['status'] in ('completed', 'skipped'))

        return {
            'documentId': self.document_id,
            'status': self.status,
            'currentStep': self.current_step,
            'totalSteps': len(self.steps),
            'completedSteps': completed_steps,
            'failedSteps': failed_steps,
            'progress': int((finished_steps / len(self.steps)) * 100) if self.steps else 0,
            'totalChanges': sum(step['changes'] for step in self.steps),
            'totalWarnings': sum(step['warnings'] for step in self.steps),
            'steps': self.steps,
            'startTime': self.start_time.isoformat(),
            'error': self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.get_progress())
