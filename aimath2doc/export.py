"""Entry points turning Markdown (or pre-edited HTML) into export artifacts.

Each call is self-contained: options are validated per call and all DOCX
numbering state lives in a fresh :class:`ProjectionContext`.
"""
import asyncio
import logging

from aimath2doc.config import MAX_INPUT_BYTES, ConvertOptions
from aimath2doc.converter import convert_markdown, generate_toc, toc_html
from aimath2doc.docx_package import DOCX_MIME_TYPE, assemble, fixed_relationships
from aimath2doc.docx_projector import ProjectionContext, project
from aimath2doc.errors import InputTooLargeError
from aimath2doc.html_export import HTML_MIME_TYPE, standalone_document
from aimath2doc.pdf_export import PDF_MIME_TYPE, render_pdf
from aimath2doc.themes import pygments_style

logger = logging.getLogger(__name__)


def check_input_size(content: str, limit: int = None):
    limit = MAX_INPUT_BYTES if limit is None else limit
    size = len(content.encode("utf-8"))
    if size > limit:
        raise InputTooLargeError(size, limit)


def _latex_only(latex, display=False):
    # DOCX renders equations itself from the data-latex attribute
    return ""


def _toc_entries(content, opts):
    if not opts.include_table_of_contents or opts.is_pre_edited_html:
        return []
    return generate_toc(content)


def _prepare(content, options):
    if content is None:
        content = ""
    check_input_size(content)
    return content, ConvertOptions.coerce(options)


def _document_html(content, opts, footer=False):
    if opts.is_pre_edited_html:
        fragment = content
    else:
        fragment = convert_markdown(content, highlight_style=pygments_style(opts.theme))
    return standalone_document(
        fragment,
        title=opts.title,
        author=opts.author,
        date=opts.date,
        theme=opts.theme,
        include_styles=opts.include_styles,
        toc=toc_html(_toc_entries(content, opts)),
        footer=footer,
    )


def to_html(content: str, options=None) -> str:
    content, opts = _prepare(content, options)
    logger.info(f'Generating HTML for "{opts.title}" ({len(content)} chars, '
                f'pre-edited: {opts.is_pre_edited_html})')
    return _document_html(content, opts)


def to_docx(content: str, options=None) -> bytes:
    content, opts = _prepare(content, options)
    logger.info(f'Generating DOCX for "{opts.title}" ({len(content)} chars, theme: {opts.theme.value}, '
                f'equations: {opts.equation_mode.value})')
    if opts.is_pre_edited_html:
        fragment = content
    else:
        fragment = convert_markdown(content, render=_latex_only)
    context = ProjectionContext(
        theme=opts.theme,
        equation_mode=opts.equation_mode,
        fixed_relationship_count=len(fixed_relationships(opts.page_numbers)),
    )
    result = project(
        fragment,
        opts.title,
        opts.author,
        opts.date,
        opts.theme,
        context=context,
        toc_entries=_toc_entries(content, opts),
        page_numbers=opts.page_numbers,
    )
    package = assemble(
        result.document_xml,
        opts.theme,
        result.media,
        title=opts.title,
        author=opts.author,
        page_numbers=opts.page_numbers,
        compression=opts.compression,
    )
    logger.info(f"Generated DOCX ({len(package)} bytes, {len(result.media)} equation images)")
    return package


async def to_pdf(content: str, options=None) -> bytes:
    content, opts = _prepare(content, options)
    logger.info(f'Generating PDF for "{opts.title}" ({len(content)} chars)')
    document = _document_html(content, opts, footer=True)
    return await render_pdf(document, page_numbers=opts.page_numbers)


def to_pdf_sync(content: str, options=None) -> bytes:
    return asyncio.run(to_pdf(content, options))


# format -> (exporter, file extension, MIME type)
FORMATS = {
    "html": (to_html, "html", HTML_MIME_TYPE),
    "docx": (to_docx, "docx", DOCX_MIME_TYPE),
    "pdf": (to_pdf_sync, "pdf", PDF_MIME_TYPE),
}
