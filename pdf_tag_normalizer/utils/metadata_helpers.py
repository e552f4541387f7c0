"""Utilities for ensuring the PDF/UA identification metadata of a document."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pikepdf
from pikepdf import Dictionary, Name

logger = logging.getLogger(__name__)

PDFUA_PART = "1"


def _has_metadata_value(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return any(str(item).strip() for item in value)
    return bool(str(value).strip())


def _fallback_title(pdf: pikepdf.Pdf) -> str:
    filename = getattr(pdf, "filename", "") or ""
    stem = Path(filename).stem if filename else ""
    return stem or "Untitled Document"


def ensure_pdfua_identifier(pdf: pikepdf.Pdf, title: Optional[str] = None) -> bool:
    """
    Ensure the document declares PDF/UA-1 conformance.

    Writes ``pdfuaid:part`` (and ``dc:title`` when missing) into the catalog's
    XMP /Metadata stream, creating the stream when absent, fills the DocInfo
    /Title, and sets /MarkInfo /Marked and /ViewerPreferences /DisplayDocTitle.

    Returns True if anything was added or updated.
    """
    changed = False

    current_title = str(pdf.docinfo.get("/Title", "")).strip()
    safe_title = current_title or str(title or "").strip() or _fallback_title(pdf)
    if not current_title:
        pdf.docinfo[Name("/Title")] = safe_title
        changed = True

    had_stream = "/Metadata" in pdf.Root
    with pdf.open_metadata(set_pikepdf_as_editor=False, update_docinfo=False) as meta:
        if not _has_metadata_value(meta.get("dc:title")):
            meta["dc:title"] = safe_title
            changed = True
        if str(meta.get("pdfuaid:part", "")).strip() != PDFUA_PART:
            meta["pdfuaid:part"] = PDFUA_PART
            changed = True
    if not had_stream and "/Metadata" in pdf.Root:
        changed = True

    mark_info = pdf.Root.get("/MarkInfo")
    if mark_info is None:
        pdf.Root.MarkInfo = pdf.make_indirect(Dictionary(Marked=True))
        changed = True
    elif not bool(mark_info.get("/Marked", False)):
        mark_info.Marked = True
        changed = True

    viewer_prefs = pdf.Root.get("/ViewerPreferences")
    if viewer_prefs is None:
        pdf.Root.ViewerPreferences = Dictionary(DisplayDocTitle=True)
        changed = True
    elif not bool(viewer_prefs.get("/DisplayDocTitle", False)):
        viewer_prefs.DisplayDocTitle = True
        changed = True

    if changed:
        logger.info("[Metadata] Ensured PDF/UA-1 identification metadata")
    return changed
