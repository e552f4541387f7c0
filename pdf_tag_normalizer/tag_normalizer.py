"""
Tag Normalizer
Detect -> rewrite -> validate driver over a document's structure tree.

Usage:
    with pikepdf.open(path, allow_overwriting_input=True) as pdf:
        result = TagNormalizer().normalize(pdf)
        if result.change_count:
            pdf.save(path)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import pikepdf

from pdf_tag_normalizer.config import NormalizerConfig
from pdf_tag_normalizer.detectors import Detector, Finding, FindingKind, default_detectors
from pdf_tag_normalizer.pdf_structure_standards import DOCUMENT
from pdf_tag_normalizer.rewriters import Rewriter, default_rewriters, rewriters_by_kind
from pdf_tag_normalizer.structure_io import commit_structure_tree, load_structure_tree
from pdf_tag_normalizer.structure_tree import StructureTree
from pdf_tag_normalizer.utils.outline import render_outline

logger = logging.getLogger(__name__)

UNTAGGED_MESSAGE = "No accessibility tags found - document may need initial tagging."
ATTENTION_MARKER = "attention needed"
CHANGE_PREFIX = "✓ "
WARNING_PREFIX = "⚠ "


class NormalizerState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    REWRITING = "rewriting"
    VALIDATING = "validating"
    DONE = "done"


_TRANSITIONS = {
    NormalizerState.IDLE: {NormalizerState.DETECTING, NormalizerState.DONE},
    NormalizerState.DETECTING: {NormalizerState.REWRITING, NormalizerState.DONE},
    NormalizerState.REWRITING: {NormalizerState.VALIDATING},
    NormalizerState.VALIDATING: {NormalizerState.DETECTING, NormalizerState.DONE},
    NormalizerState.DONE: set(),
}


@dataclass
class ChangeRecord:
    description: str
    node_id: Optional[int] = None
    kind: Optional[FindingKind] = None
    pass_number: int = 0
    count: int = 1


@dataclass
class WarningRecord:
    description: str
    node_id: Optional[int] = None
    kind: Optional[FindingKind] = None
    pass_number: int = 0
    count: int = 1


@dataclass
class NormalizationResult:
    """Outcome of one run: records in the order they happened plus the final state."""

    changes: List[ChangeRecord] = field(default_factory=list)
    warnings: List[WarningRecord] = field(default_factory=list)
    report_lines: List[str] = field(default_factory=list)
    outline: List[str] = field(default_factory=list)
    passes: int = 0
    state: NormalizerState = NormalizerState.IDLE
    tagged: bool = True

    @property
    def change_count(self) -> int:
        return sum(record.count for record in self.changes)

    @property
    def warning_count(self) -> int:
        return sum(record.count for record in self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'changeCount': self.change_count,
            'warningCount': self.warning_count,
            'reportLines': list(self.report_lines),
            'outline': list(self.outline),
            'passes': self.passes,
            'state': self.state.value,
            'tagged': self.tagged,
        }


class TagNormalizer:
    """
    Runs the detector/rewriter rule set over a structure tree until no actionable
    findings remain or the pass budget is spent.

    Args:
        config: Run configuration (defaults to ``NormalizerConfig.from_env()``)
        detectors: Rule checks; defaults follow ``config``
        rewriters: Rewriters owning the detectors' finding kinds
        on_progress: Optional callback receiving each report line as it happens
    """

    def __init__(
        self,
        config: Optional[NormalizerConfig] = None,
        detectors: Optional[Sequence[Detector]] = None,
        rewriters: Optional[Sequence[Rewriter]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
    ):
        self.config = config or NormalizerConfig.from_env()
        self.detectors = list(detectors) if detectors is not None else default_detectors(
            single_title_heading=self.config.single_title_heading,
            grouping_roles=self.config.grouping_roles,
        )
        rewriter_list = list(rewriters) if rewriters is not None else default_rewriters(
            grouping_roles=self.config.grouping_roles,
        )
        self._rewriters = rewriters_by_kind(rewriter_list)
        self.on_progress = on_progress
        self.state = NormalizerState.IDLE

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def normalize(self, pdf: pikepdf.Pdf) -> NormalizationResult:
        """Load the structure tree, normalize it and commit the result back into ``pdf``."""
        tree = load_structure_tree(pdf)
        if tree is None:
            self.state = NormalizerState.IDLE
            self._transition(NormalizerState.DONE)
            result = NormalizationResult(state=self.state, tagged=False)
            self._emit(result, UNTAGGED_MESSAGE)
            logger.warning(f"[TagNormalizer] {UNTAGGED_MESSAGE}")
            return result

        result = self.normalize_tree(tree)
        markers = self.warning_markers(tree, result) if self.config.mark_warnings else {}
        if result.change_count or markers:
            commit_structure_tree(pdf, tree, markers=markers)
        return result

    def normalize_tree(self, tree: StructureTree) -> NormalizationResult:
        """Run the state machine on an in-memory tree; mutates ``tree`` in place."""
        self.state = NormalizerState.IDLE
        result = NormalizationResult()
        warned: Set[Tuple[FindingKind, int]] = set()

        self._transition(NormalizerState.DETECTING)
        findings = self._actionable(tree, warned)
        while findings:
            if result.passes >= self.config.max_passes:
                self._exhaust(result, tree, findings, warned)
                break

            result.passes += 1
            self._transition(NormalizerState.REWRITING)
            self._rewrite_pass(tree, findings, result, warned)

            self._transition(NormalizerState.VALIDATING)
            if self.config.verify_tree:
                tree.check_consistency()

            self._transition(NormalizerState.DETECTING)
            findings = self._actionable(tree, warned)

        self._transition(NormalizerState.DONE)
        result.state = self.state
        result.outline = render_outline(tree, self.outline_annotations(tree, result))
        logger.info(
            f"[TagNormalizer] Finished after {result.passes} pass(es): "
            f"{result.change_count} change(s), {result.warning_count} warning(s)"
        )
        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _actionable(self, tree: StructureTree, warned: Set[Tuple[FindingKind, int]]) -> List[Finding]:
        findings: List[Finding] = []
        seen: Set[Tuple[FindingKind, int]] = set()
        for detector in self.detectors:
            for finding in detector.detect(tree):
                if finding.key in warned or finding.key in seen:
                    continue
                seen.add(finding.key)
                findings.append(finding)
        logger.debug(f"[TagNormalizer] {len(findings)} actionable finding(s)")
        return findings

    def _rewrite_pass(
        self,
        tree: StructureTree,
        findings: List[Finding],
        result: NormalizationResult,
        warned: Set[Tuple[FindingKind, int]],
    ) -> None:
        for finding in findings:
            rewriter = self._rewriters.get(finding.kind)
            if rewriter is None:
                warned.add(finding.key)
                self._record_warning(result, finding.node_id, finding.kind, self._finding_line(tree, finding))
                continue

            outcome = rewriter.rewrite(tree, finding)
            if outcome is None:
                logger.debug(f"[TagNormalizer] Skipping stale finding {finding.kind.value} on node {finding.node_id}")
                continue
            if outcome.is_change:
                self._record_change(result, outcome.node_id, finding.kind, outcome.description)
            else:
                warned.add(finding.key)
                self._record_warning(result, outcome.node_id, finding.kind, outcome.description)

    def _exhaust(
        self,
        result: NormalizationResult,
        tree: StructureTree,
        findings: List[Finding],
        warned: Set[Tuple[FindingKind, int]],
    ) -> None:
        logger.warning(
            f"[TagNormalizer] Pass budget of {self.config.max_passes} reached with "
            f"{len(findings)} unresolved finding(s)"
        )
        for finding in findings:
            warned.add(finding.key)
            self._record_warning(
                result,
                finding.node_id,
                finding.kind,
                f"{self._finding_line(tree, finding)} (unresolved after {self.config.max_passes} passes)",
            )

    @staticmethod
    def _finding_line(tree: StructureTree, finding: Finding) -> str:
        if finding.node_id in tree:
            return f"{tree.describe(finding.node_id)}: {finding.description}"
        return finding.description

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _record_change(self, result: NormalizationResult, node_id, kind, description: str) -> None:
        result.changes.append(ChangeRecord(description, node_id, kind, result.passes))
        logger.info(f"[TagNormalizer] Change: {description}")
        self._emit(result, CHANGE_PREFIX + description)

    def _record_warning(self, result: NormalizationResult, node_id, kind, description: str) -> None:
        result.warnings.append(WarningRecord(description, node_id, kind, result.passes))
        logger.warning(f"[TagNormalizer] Warning: {description}")
        self._emit(result, WARNING_PREFIX + description)

    def _emit(self, result: NormalizationResult, line: str) -> None:
        result.report_lines.append(line)
        if self.on_progress is not None:
            self.on_progress(line)

    def _transition(self, new_state: NormalizerState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal normalizer transition {self.state.value} -> {new_state.value}")
        logger.debug(f"[TagNormalizer] {self.state.value} -> {new_state.value}")
        self.state = new_state

    @staticmethod
    def outline_annotations(tree: StructureTree, result: NormalizationResult) -> Dict[int, str]:
        """Outline comments: what changed on or was wrong with each surviving element."""
        comments: Dict[int, List[str]] = {}
        for record in [*result.changes, *result.warnings]:
            if record.node_id is None or record.node_id not in tree or tree.is_content(record.node_id):
                continue
            # Descriptions read "<element>: <text>"; keep the text.
            _, separator, text = record.description.partition(": ")
            comments.setdefault(record.node_id, []).append(text if separator else record.description)
        return {node_id: "; ".join(texts) for node_id, texts in comments.items()}

    @staticmethod
    def warning_markers(tree: StructureTree, result: NormalizationResult) -> Dict[int, str]:
        """
        Visual /T markers for warned elements.

        The warned element gets its warning text; its ancestors up to (not
        including) the Document element get "attention needed".
        """
        markers: Dict[int, str] = {}
        for record in result.warnings:
            node_id = record.node_id
            if node_id is None or node_id not in tree or tree.is_content(node_id):
                continue
            markers.setdefault(node_id, record.description)
            for ancestor_id in tree.ancestors(node_id):
                if ancestor_id == tree.root_id or tree.effective_role(ancestor_id) == DOCUMENT:
                    break
                markers.setdefault(ancestor_id, ATTENTION_MARKER)
        return markers


def normalize(pdf: pikepdf.Pdf, config: Optional[NormalizerConfig] = None, on_progress=None) -> NormalizationResult:
    """Convenience wrapper: normalize ``pdf`` in place with the default rule set."""
    return TagNormalizer(config=config, on_progress=on_progress).normalize(pdf)
