"""Geocoded text documents: plain text, Markdown and PDF files with a user-supplied geometry."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pypdf

from georag.models import RawDocument

TEXT_SUFFIXES = frozenset({".txt", ".md", ".markdown", ".rst"})
PDF_SUFFIXES = frozenset({".pdf"})


def point_geometry(x: float, y: float) -> dict[str, Any]:
    return {"type": "Point", "coordinates": [float(x), float(y)]}


def read_text_document(path: Path | str, geometry: dict[str, Any]) -> list[RawDocument]:
    """One RawDocument for the whole file, located at *geometry*."""
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="replace")
    return [RawDocument(id=path.stem, text=text, geometry=geometry, source=str(path))]


def read_pdf_document(path: Path | str, geometry: dict[str, Any]) -> list[RawDocument]:
    """One RawDocument per PDF page with text, each located at *geometry*.

    Pages that yield no text (scanned images, etc.) are skipped.
    """
    path = Path(path)
    reader = pypdf.PdfReader(str(path))
    documents: list[RawDocument] = []
    for number, page in enumerate(reader.pages, start=1):
        text = (page.extract_text() or "").strip()
        if not text:
            continue
        documents.append(
            RawDocument(
                id=f"{path.stem}-p{number}",
                text=text,
                geometry=geometry,
                source=str(path),
                page=number,
            )
        )
    return documents


def read_document(path: Path | str, geometry: dict[str, Any]) -> list[RawDocument]:
    """Dispatch on file suffix.

    Raises:
        ValueError: Unsupported file type.
    """
    suffix = Path(path).suffix.lower()
    if suffix in PDF_SUFFIXES:
        return read_pdf_document(path, geometry)
    if suffix in TEXT_SUFFIXES:
        return read_text_document(path, geometry)
    raise ValueError(
        f"Unsupported document type '{suffix}'. "
        f"Use one of: {', '.join(sorted(TEXT_SUFFIXES | PDF_SUFFIXES))} (or .geojson for datasets)"
    )
