"""Markdown with LaTeX math to DOCX, HTML and PDF."""
from aimath2doc.config import ConvertOptions, EquationMode, Theme
from aimath2doc.converter import convert_markdown, generate_toc, markdown_stats
from aimath2doc.errors import (
    Aimath2DocError,
    InputTooLargeError,
    MarkdownConversionError,
    MathRenderError,
    PdfExportError,
)
from aimath2doc.export import to_docx, to_html, to_pdf, to_pdf_sync

__version__ = "2.0"
