"""
Fix Registry
Processing steps applied to a document, and the uniform result each one returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

import pikepdf
from pikepdf import Name

from pdf_tag_normalizer.config import NormalizerConfig
from pdf_tag_normalizer.structure_tree import TreeConsistencyError
from pdf_tag_normalizer.tag_normalizer import TagNormalizer
from pdf_tag_normalizer.utils.metadata_helpers import ensure_pdfua_identifier

logger = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[str], None]]

SECTION_RULE = "─" * 40


@dataclass
class OperationResult:
    """Outcome of a single processing step."""

    success: bool
    change_count: int = 0
    warning_count: int = 0
    message: str = ""
    report_lines: List[str] = field(default_factory=list)

    @classmethod
    def success_result(cls, message: str) -> "OperationResult":
        return cls(True, 0, 0, message)

    @classmethod
    def changes(cls, change_count: int, message: str) -> "OperationResult":
        return cls(True, change_count, 0, message)

    @classmethod
    def warnings(cls, warning_count: int, message: str) -> "OperationResult":
        return cls(True, 0, warning_count, message)

    @classmethod
    def changes_and_warnings(cls, change_count: int, warning_count: int, message: str) -> "OperationResult":
        return cls(True, change_count, warning_count, message)

    @classmethod
    def error(cls, message: str) -> "OperationResult":
        return cls(False, 0, 0, message)

    def to_dict(self) -> Dict[str, object]:
        return {
            'success': self.success,
            'changeCount': self.change_count,
            'warningCount': self.warning_count,
            'message': self.message,
            'reportLines': list(self.report_lines),
        }


def _emit(output: ProgressCallback, line: str) -> None:
    if output is not None:
        output(line)


class PdfAccessibilityFix:
    """Base class for one processing step."""

    name = "Unnamed step"
    description = ""
    enabled_by_default = True

    def execute(self, pdf: pikepdf.Pdf, output: ProgressCallback = None) -> OperationResult:
        raise NotImplementedError


class TagNormalizationFix(PdfAccessibilityFix):
    name = "Tag Structure Normalization"
    description = "Fixes malformed lists, heading hierarchy, and document structure"

    def __init__(self, config: Optional[NormalizerConfig] = None):
        self.config = config

    def execute(self, pdf: pikepdf.Pdf, output: ProgressCallback = None) -> OperationResult:
        _emit(output, "Tag structure analysis and fixes:")
        _emit(output, SECTION_RULE)
        try:
            result = TagNormalizer(config=self.config, on_progress=output).normalize(pdf)
        except TreeConsistencyError as e:
            logger.error(f"[TagNormalizationFix] Structure tree became inconsistent: {e}")
            return OperationResult.error(f"Structure tree became inconsistent: {e}")

        operation = OperationResult.changes_and_warnings(
            result.change_count,
            result.warning_count,
            "Tag structure normalization complete",
        )
        operation.report_lines = list(result.report_lines)
        if result.outline:
            outline_lines = ["", "Resulting structure:", SECTION_RULE, *result.outline]
            for line in outline_lines:
                _emit(output, line)
            operation.report_lines.extend(outline_lines)
        return operation


class PdfUaComplianceFix(PdfAccessibilityFix):
    name = "PDF/UA-1 Compliance"
    description = "Sets PDF/UA-1 compliance metadata"

    def execute(self, pdf: pikepdf.Pdf, output: ProgressCallback = None) -> OperationResult:
        ensure_pdfua_identifier(pdf)
        line = "✓ Set PDF/UA-1 compliance flag"
        _emit(output, line)
        operation = OperationResult.success_result("PDF/UA-1 compliance flag set")
        operation.report_lines = [line]
        return operation


class TabOrderFix(PdfAccessibilityFix):
    name = "Tab Order"
    description = "Sets the tab order of every page to follow the structure tree"

    def execute(self, pdf: pikepdf.Pdf, output: ProgressCallback = None) -> OperationResult:
        for page in pdf.pages:
            page.obj[Name("/Tabs")] = Name("/S")
        line = f"✓ Set tab order to structure order for all {len(pdf.pages)} pages"
        _emit(output, line)
        operation = OperationResult.success_result(f"Tab order set for {len(pdf.pages)} pages")
        operation.report_lines = [line]
        return operation


class FixRegistry:
    """Ordered collection of processing steps, looked up by name."""

    def __init__(self, steps: Optional[List[PdfAccessibilityFix]] = None):
        self._steps: List[PdfAccessibilityFix] = []
        for step in steps or []:
            self.register(step)

    def register(self, step: PdfAccessibilityFix) -> None:
        if self.get(step.name) is not None:
            raise ValueError(f"A step named '{step.name}' is already registered")
        self._steps.append(step)

    def get(self, name: str) -> Optional[PdfAccessibilityFix]:
        return next((step for step in self._steps if step.name == name), None)

    def enabled_steps(self) -> List[PdfAccessibilityFix]:
        return [step for step in self._steps if step.enabled_by_default]

    def __iter__(self) -> Iterator[PdfAccessibilityFix]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    @classmethod
    def default(cls, config: Optional[NormalizerConfig] = None) -> "FixRegistry":
        return cls(default_steps(config))


def default_steps(config: Optional[NormalizerConfig] = None) -> List[PdfAccessibilityFix]:
    return [
        TagNormalizationFix(config=config),
        PdfUaComplianceFix(),
        TabOrderFix(),
    ]
