from dataclasses import dataclass

from aimath2doc.config import Theme


@dataclass(frozen=True)
class DocxPalette:
    title: str
    subtitle: str
    date: str
    heading1: str
    heading2: str
    heading3: str
    heading4: str
    normal: str
    quote: str
    code_bg: str
    code_text: str
    link: str
    table_header_fill: str
    table_border: str


@dataclass(frozen=True)
class CssPalette:
    background: str
    page_background: str
    text: str
    heading: str
    accent: str
    code: str
    code_text: str
    table_bg: str
    table_header: str
    table_stripe: str
    border: str
    quote_bg: str


_DOCX = {
    Theme.COLOR: DocxPalette(
        title="2E74B5",
        subtitle="595959",
        date="7F7F7F",
        heading1="2E74B5",
        heading2="2E74B5",
        heading3="1F4D78",
        heading4="2E74B5",
        normal="000000",
        quote="595959",
        code_bg="F2F2F2",
        code_text="000000",
        link="0563C1",
        table_header_fill="DEEAF6",
        table_border="BFBFBF",
    ),
    Theme.BLACK_AND_WHITE: DocxPalette(
        title="000000",
        subtitle="000000",
        date="404040",
        heading1="000000",
        heading2="000000",
        heading3="000000",
        heading4="000000",
        normal="000000",
        quote="404040",
        code_bg="F5F5F5",
        code_text="000000",
        link="000000",
        table_header_fill="F0F0F0",
        table_border="808080",
    ),
}

_CSS = {
    Theme.COLOR: CssPalette(
        background="linear-gradient(135deg, #0f172a 0%, #1e293b 100%)",
        page_background="#0f172a",
        text="#e2e8f0",
        heading="#66e4ff",
        accent="#d946ef",
        code="rgba(255, 255, 255, 0.05)",
        code_text="#e2e8f0",
        table_bg="rgba(255, 255, 255, 0.02)",
        table_header="rgba(102, 228, 255, 0.1)",
        table_stripe="rgba(255, 255, 255, 0.05)",
        border="rgba(255, 255, 255, 0.1)",
        quote_bg="rgba(255, 255, 255, 0.02)",
    ),
    Theme.BLACK_AND_WHITE: CssPalette(
        background="#ffffff",
        page_background="#ffffff",
        text="#000000",
        heading="#1a1a1a",
        accent="#1a1a1a",
        code="#f5f5f5",
        code_text="#000000",
        table_bg="#ffffff",
        table_header="#f0f0f0",
        table_stripe="#f8fafc",
        border="#cccccc",
        quote_bg="#f9f9f9",
    ),
}

_PYGMENTS = {
    Theme.COLOR: "monokai",
    Theme.BLACK_AND_WHITE: "bw",
}


def docx_palette(theme) -> DocxPalette:
    return _DOCX[Theme(theme)]


def css_palette(theme) -> CssPalette:
    return _CSS[Theme(theme)]


def pygments_style(theme) -> str:
    return _PYGMENTS[Theme(theme)]
