"""PDF rendering through headless Chromium driven by Playwright."""
import asyncio
import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from aimath2doc.config import PDF_LAUNCH_TIMEOUT_MS, PDF_PAGE_TIMEOUT_MS
from aimath2doc.errors import PdfExportError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

PDF_MARGINS = {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]

FOOTER_TEMPLATE = (
    '<div style="width: 100%; font-size: 9px; text-align: center; color: #888;">'
    '<span class="pageNumber"></span> / <span class="totalPages"></span></div>'
)


def pdf_options(page_numbers=False):
    options = {
        "format": "A4",
        "print_background": True,
        "margin": dict(PDF_MARGINS),
        "prefer_css_page_size": False,
    }
    if page_numbers:
        options.update(
            display_header_footer=True,
            header_template="<div></div>",
            footer_template=FOOTER_TEMPLATE,
        )
    return options


async def _render(document_html, page_numbers, timeout_ms):
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=True, args=CHROMIUM_ARGS, timeout=PDF_LAUNCH_TIMEOUT_MS
        )
        try:
            page = await browser.new_page()
            try:
                page.set_default_timeout(timeout_ms)
                page.set_default_navigation_timeout(timeout_ms)
                await page.set_content(document_html, wait_until="networkidle", timeout=timeout_ms)
                return await page.pdf(**pdf_options(page_numbers))
            finally:
                await page.close()
        finally:
            await browser.close()


async def render_pdf(document_html: str, page_numbers: bool = False, timeout_ms: int = None) -> bytes:
    """Print a standalone HTML document to PDF bytes.

    The page and the browser are closed on every exit path. Launch failures,
    navigation timeouts and the overall deadline all surface as
    :class:`PdfExportError`.
    """
    timeout_ms = timeout_ms or PDF_PAGE_TIMEOUT_MS
    # launch, load and print each get their own timeout
    deadline = (PDF_LAUNCH_TIMEOUT_MS + 2 * timeout_ms) / 1000
    logger.info(f"Rendering PDF ({len(document_html)} bytes of HTML)")
    try:
        pdf = await asyncio.wait_for(_render(document_html, page_numbers, timeout_ms), timeout=deadline)
    except asyncio.TimeoutError as e:
        logger.error(f"PDF rendering exceeded {deadline:.0f}s")
        raise PdfExportError(f"PDF rendering timed out after {deadline:.0f}s") from e
    except PlaywrightError as e:
        logger.exception("PDF rendering failed")
        raise PdfExportError(f"Failed to generate PDF: {e}") from e
    logger.info(f"Generated PDF ({len(pdf)} bytes)")
    return pdf


def render_pdf_sync(document_html: str, page_numbers: bool = False, timeout_ms: int = None) -> bytes:
    return asyncio.run(render_pdf(document_html, page_numbers=page_numbers, timeout_ms=timeout_ms))
