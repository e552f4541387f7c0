"""
PDF Processing Service
Opens a document, runs the enabled fix steps in order and saves the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pikepdf

from pdf_tag_normalizer.config import NormalizerConfig
from pdf_tag_normalizer.fix_progress_tracker import FixProgressTracker
from pdf_tag_normalizer.fix_registry import FixRegistry, OperationResult

logger = logging.getLogger(__name__)

PASSWORD_REQUIRED_MESSAGE = "The PDF is password-protected. Please provide a password."


@dataclass
class ProcessingRequest:
    input_path: str
    output_path: str
    password: Optional[str] = None
    on_progress: Optional[Callable[[str], None]] = None
    tracker: Optional[FixProgressTracker] = None


@dataclass
class ProcessingResult:
    success: bool
    change_count: int = 0
    warning_count: int = 0
    error_message: Optional[str] = None
    step_results: Dict[str, OperationResult] = field(default_factory=dict)
    report_lines: List[str] = field(default_factory=list)

    @classmethod
    def error(cls, message: str, step_results: Optional[Dict[str, OperationResult]] = None) -> "ProcessingResult":
        return cls(False, 0, 0, message, dict(step_results or {}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'changeCount': self.change_count,
            'warningCount': self.warning_count,
            'error': self.error_message,
            'steps': {name: result.to_dict() for name, result in self.step_results.items()},
            'reportLines': list(self.report_lines),
        }


class PdfProcessingService:
    """
    Runs a FixRegistry against one document.

    Steps run in registration order; the first failed step stops the run and
    nothing is saved.
    """

    def __init__(self, registry: Optional[FixRegistry] = None, config: Optional[NormalizerConfig] = None):
        self.registry = registry or FixRegistry.default(config)

    def process_pdf(self, request: ProcessingRequest) -> ProcessingResult:
        input_path = Path(request.input_path)
        output_path = Path(request.output_path)
        if not input_path.exists():
            logger.error(f"[PdfProcessingService] Input not found: {input_path}")
            return ProcessingResult.error(f"File not found: {request.input_path}")

        tracker = request.tracker or FixProgressTracker(input_path.name)
        steps = self.registry.enabled_steps()
        step_ids = {step.name: tracker.add_step(step.name, step.description) for step in steps}

        try:
            with pikepdf.open(
                input_path,
                password=request.password or "",
                allow_overwriting_input=True,
            ) as pdf:
                was_encrypted = pdf.is_encrypted
                result = self._run_steps(pdf, steps, step_ids, tracker, request.on_progress)
                if not result.success:
                    tracker.fail_all(result.error_message)
                    return result

                output_path.parent.mkdir(parents=True, exist_ok=True)
                # Re-encrypt with the input's settings only when the caller could open it.
                pdf.save(output_path, encryption=bool(was_encrypted and request.password))
        except pikepdf.PasswordError as e:
            message = PASSWORD_REQUIRED_MESSAGE if not request.password else f"Processing error: {e}"
            logger.error(f"[PdfProcessingService] {message}")
            tracker.fail_all(message)
            return ProcessingResult.error(message)
        except (pikepdf.PdfError, OSError) as e:
            logger.error(f"[PdfProcessingService] Error processing {input_path}: {e}")
            tracker.fail_all(str(e))
            return ProcessingResult.error(f"Processing error: {e}")

        tracker.complete_all()
        logger.info(
            f"[PdfProcessingService] Saved {output_path} "
            f"({result.change_count} change(s), {result.warning_count} warning(s))"
        )
        return result

    def _run_steps(self, pdf, steps, step_ids, tracker: FixProgressTracker, on_progress) -> ProcessingResult:
        result = ProcessingResult(success=True)
        for step in steps:
            step_id = step_ids[step.name]
            tracker.start_step(step_id)
            try:
                outcome = step.execute(pdf, on_progress)
            except Exception as e:
                logger.error(f"[PdfProcessingService] Step '{step.name}' raised: {e}")
                outcome = OperationResult.error(str(e))

            result.step_results[step.name] = outcome
            if not outcome.success:
                tracker.fail_step(step_id, outcome.message)
                return ProcessingResult.error(
                    f"Failed at step: {step.name} - {outcome.message}",
                    result.step_results,
                )

            tracker.complete_step(step_id, outcome.message, outcome.change_count, outcome.warning_count)
            result.change_count += outcome.change_count
            result.warning_count += outcome.warning_count
            result.report_lines.extend(outcome.report_lines)
        return result
