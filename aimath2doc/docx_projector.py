"""Projection of the converted HTML onto WordprocessingML.

OOXML paragraphs cannot nest, so the walk keeps at most one paragraph open:
inline content is collected as runs, and any block element met while a
paragraph is open closes it before the block is emitted. Equations become
inline SVG drawings (or OMML in editable mode); every counter involved lives
on a :class:`ProjectionContext` owned by a single call.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString
from docx.oxml import OxmlElement, parse_xml
from docx.oxml.ns import nsdecls, qn
from lxml import etree

from aimath2doc.config import DEFAULT_TITLE, EquationMode, Theme
from aimath2doc.docx_package import FOOTER_PART, fixed_relationships
from aimath2doc.errors import MathRenderError
from aimath2doc.math_render import TEX_ENCODING, latex_to_omml, render_svg, svg_size_pt
from aimath2doc.resolver import LATEX_ATTR, MATH_DISPLAY_CLASS, is_math_container
from aimath2doc.themes import docx_palette

logger = logging.getLogger(__name__)

EMU_PER_PT = 12700
EMU_PER_INCH = 914400
# Used when the rendered SVG carries no readable size.
DEFAULT_EQUATION_EXTENT = (EMU_PER_INCH, int(EMU_PER_INCH * 0.3))
MAX_EQUATION_WIDTH = 6 * EMU_PER_INCH

SVG_BLIP_EXT_URI = "{96DAC541-7B7A-43D3-8B79-37D633B846F1}"
ASVG_NS = "http://schemas.microsoft.com/office/drawing/2016/SVG/main"
PICTURE_URI = "http://schemas.openxmlformats.org/drawingml/2006/picture"

CODE_FONT = "Consolas"
TEXT_WIDTH_TWIPS = 9360

HEADING_STYLES = {
    "h1": "Heading1",
    "h2": "Heading2",
    "h3": "Heading3",
    "h4": "Heading4",
    "h5": "Heading4",
    "h6": "Heading4",
}


class NodeKind(Enum):
    # block
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    BLOCKQUOTE = "blockquote"
    CODE_BLOCK = "code_block"
    TABLE = "table"
    RULE = "rule"
    DISPLAY_MATH = "display_math"
    CONTAINER = "container"
    # inline
    TEXT = "text"
    STRONG = "strong"
    EMPHASIS = "emphasis"
    STRIKE = "strike"
    CODE = "code"
    LINK = "link"
    BREAK = "break"
    IMAGE = "image"
    INLINE_MATH = "inline_math"
    SPAN = "span"
    IGNORED = "ignored"


BLOCK_KINDS = frozenset({
    NodeKind.HEADING,
    NodeKind.PARAGRAPH,
    NodeKind.LIST,
    NodeKind.BLOCKQUOTE,
    NodeKind.CODE_BLOCK,
    NodeKind.TABLE,
    NodeKind.RULE,
    NodeKind.DISPLAY_MATH,
    NodeKind.CONTAINER,
})

_TAG_KINDS = {
    "p": NodeKind.PARAGRAPH,
    "ul": NodeKind.LIST,
    "ol": NodeKind.LIST,
    "blockquote": NodeKind.BLOCKQUOTE,
    "pre": NodeKind.CODE_BLOCK,
    "table": NodeKind.TABLE,
    "hr": NodeKind.RULE,
    "strong": NodeKind.STRONG,
    "b": NodeKind.STRONG,
    "em": NodeKind.EMPHASIS,
    "i": NodeKind.EMPHASIS,
    "del": NodeKind.STRIKE,
    "s": NodeKind.STRIKE,
    "strike": NodeKind.STRIKE,
    "code": NodeKind.CODE,
    "a": NodeKind.LINK,
    "br": NodeKind.BREAK,
    "img": NodeKind.IMAGE,
    "script": NodeKind.IGNORED,
    "style": NodeKind.IGNORED,
    "head": NodeKind.IGNORED,
    "title": NodeKind.IGNORED,
}
_TAG_KINDS.update({tag: NodeKind.HEADING for tag in HEADING_STYLES})

_CONTAINER_TAGS = frozenset({
    "html", "body", "div", "section", "article", "main", "header", "footer",
    "nav", "aside", "figure", "figcaption", "details", "summary", "dl", "dt",
    "dd", "li", "form", "fieldset", "address",
})


def classify(node) -> NodeKind:
    if isinstance(node, PreformattedString):
        return NodeKind.IGNORED
    if isinstance(node, NavigableString):
        return NodeKind.TEXT
    if not isinstance(node, Tag):
        return NodeKind.IGNORED
    if is_math_container(node):
        if MATH_DISPLAY_CLASS in node.get("class", []):
            return NodeKind.DISPLAY_MATH
        return NodeKind.INLINE_MATH
    name = (node.name or "").lower()
    if name in _TAG_KINDS:
        return _TAG_KINDS[name]
    if name in _CONTAINER_TAGS:
        return NodeKind.CONTAINER
    return NodeKind.SPAN


@dataclass
class EquationImage:
    index: int
    rel_id: str
    svg: bytes

    @property
    def filename(self):
        return f"math{self.index}.svg"

    @property
    def target(self):
        return f"media/{self.filename}"


@dataclass
class ProjectionContext:
    """Per-conversion state: image numbering and the collected media."""

    theme: Theme = Theme.COLOR
    equation_mode: EquationMode = EquationMode.SVG
    fixed_relationship_count: int = len(fixed_relationships())
    svg_renderer: Callable = render_svg
    image_count: int = 0
    media: List[EquationImage] = field(default_factory=list)

    def add_image(self, svg: bytes) -> EquationImage:
        self.image_count += 1
        rel_id = f"rId{self.fixed_relationship_count + self.image_count}"
        image = EquationImage(self.image_count, rel_id, svg)
        self.media.append(image)
        return image


@dataclass
class ProjectionResult:
    document_xml: bytes
    media: List[EquationImage]


# --- run and paragraph builders -------------------------------------------

_XML_INVALID_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _xml_safe(text):
    return _XML_INVALID_RE.sub("", text)


def _on(parent, tag, **attrs):
    el = OxmlElement(tag)
    for name, value in attrs.items():
        el.set(qn(f"w:{name}"), str(value))
    parent.append(el)
    return el


def run_properties(bold=False, italic=False, strike=False, color=None, font=None,
                   size=None, underline=False, shading=None):
    rpr = OxmlElement("w:rPr")
    # children in schema order
    if font:
        _on(rpr, "w:rFonts", ascii=font, hAnsi=font, cs=font)
    if bold:
        _on(rpr, "w:b")
    if italic:
        _on(rpr, "w:i")
    if strike:
        _on(rpr, "w:strike")
    if color:
        _on(rpr, "w:color", val=color)
    if size:
        _on(rpr, "w:sz", val=size)
    if underline:
        _on(rpr, "w:u", val="single")
    if shading:
        _on(rpr, "w:shd", val="clear", color="auto", fill=shading)
    return rpr if len(rpr) else None


def text_run(text, **props):
    r = OxmlElement("w:r")
    rpr = run_properties(**props)
    if rpr is not None:
        r.append(rpr)
    t = OxmlElement("w:t")
    t.set(qn("xml:space"), "preserve")
    t.text = _xml_safe(text)
    r.append(t)
    return r


def empty_run():
    return text_run("")


def break_run():
    r = OxmlElement("w:r")
    _on(r, "w:br")
    return r


def marker_run(text):
    """A list marker followed by a tab, as used by the list styles' hanging indent."""
    r = text_run(text)
    r.append(OxmlElement("w:tab"))
    return r


def tab_run(text):
    r = OxmlElement("w:r")
    r.append(OxmlElement("w:tab"))
    t = OxmlElement("w:t")
    t.set(qn("xml:space"), "preserve")
    t.text = _xml_safe(text)
    r.append(t)
    return r


def paragraph(items, style=None, justify=None, border=False):
    p = OxmlElement("w:p")
    if style or justify or border:
        ppr = _on(p, "w:pPr")
        if style:
            _on(ppr, "w:pStyle", val=style)
        if border:
            bdr = _on(ppr, "w:pBdr")
            _on(bdr, "w:bottom", val="single", sz=6, space=1, color="auto")
        if justify:
            _on(ppr, "w:jc", val=justify)
    for item in items:
        p.append(item)
    return p


def _text_of(run):
    if run.tag != qn("w:r"):
        return None
    children = [c for c in run if c.tag != qn("w:rPr")]
    if len(children) == 1 and children[0].tag == qn("w:t"):
        return children[0]
    return None


def _is_blank(item):
    t = _text_of(item)
    return t is not None and not (t.text or "").strip()


def _is_break(item):
    return item.tag == qn("w:r") and item.find(qn("w:br")) is not None


class _ParagraphBuilder:
    """Runs collected for the paragraph currently open in a flow."""

    def __init__(self, style=None, justify=None):
        self.style = style
        self.justify = justify
        self.items = []

    def add(self, items):
        self.items.extend(items)

    def has_content(self):
        return any(not _is_blank(item) for item in self.items)

    def build(self):
        items = list(self.items)
        while items and _is_blank(items[0]):
            items.pop(0)
        while items and _is_blank(items[-1]):
            items.pop()
        for i, item in enumerate(items):
            t = _text_of(item)
            if t is None or not t.text:
                continue
            if i == 0 or _is_break(items[i - 1]):
                t.text = t.text.lstrip()
            if i == len(items) - 1:
                t.text = t.text.rstrip()
        return paragraph(items or [empty_run()], style=self.style, justify=self.justify)


# --- the walk -------------------------------------------------------------

def _collapse(text):
    return re.sub(r"\s+", " ", text)


def latex_source(node) -> Optional[str]:
    """Original LaTeX of a math container.

    Read from the ``data-latex`` attribute, or from the TeX annotation of the
    rendered MathML when the attribute was stripped.
    """
    latex = node.get(LATEX_ATTR)
    if latex is not None:
        return latex
    annotation = node.find("annotation", attrs={"encoding": TEX_ENCODING})
    if annotation is not None:
        return annotation.get_text()
    return None


def flat_text(node) -> str:
    if isinstance(node, PreformattedString):
        return ""
    if isinstance(node, NavigableString):
        return str(node)
    if is_math_container(node):
        return latex_source(node) or ""
    if node.name == "br":
        return " "
    return "".join(flat_text(child) for child in node.children)


def equation_extent(svg: bytes):
    """Drawing size in EMU for a rendered equation."""
    size = svg_size_pt(svg)
    if size is None:
        return DEFAULT_EQUATION_EXTENT
    cx = int(round(size[0] * EMU_PER_PT))
    cy = int(round(size[1] * EMU_PER_PT))
    if cx > MAX_EQUATION_WIDTH:
        cy = int(cy * MAX_EQUATION_WIDTH / cx)
        cx = MAX_EQUATION_WIDTH
    return cx, cy


_DRAWING_NS = f'{nsdecls("w", "wp", "a", "pic", "r")} xmlns:asvg="{ASVG_NS}"'


def drawing_run(image: EquationImage, cx: int, cy: int, description: str = ""):
    xml = (
        f'<w:r {_DRAWING_NS}><w:drawing>'
        '<wp:inline distT="0" distB="0" distL="0" distR="0">'
        f'<wp:extent cx="{cx}" cy="{cy}"/>'
        '<wp:effectExtent l="0" t="0" r="0" b="0"/>'
        f'<wp:docPr id="{image.index}" name="Equation {image.index}"/>'
        '<wp:cNvGraphicFramePr><a:graphicFrameLocks noChangeAspect="1"/></wp:cNvGraphicFramePr>'
        f'<a:graphic><a:graphicData uri="{PICTURE_URI}"><pic:pic>'
        f'<pic:nvPicPr><pic:cNvPr id="{image.index}" name="{image.filename}"/><pic:cNvPicPr/></pic:nvPicPr>'
        f'<pic:blipFill><a:blip r:embed="{image.rel_id}"><a:extLst><a:ext uri="{SVG_BLIP_EXT_URI}">'
        f'<asvg:svgBlip r:embed="{image.rel_id}"/></a:ext></a:extLst></a:blip>'
        '<a:stretch><a:fillRect/></a:stretch></pic:blipFill>'
        f'<pic:spPr><a:xfrm><a:off x="0" y="0"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></pic:spPr>'
        '</pic:pic></a:graphicData></a:graphic></wp:inline></w:drawing></w:r>'
    )
    run = parse_xml(xml)
    if description:
        run.find(".//" + qn("wp:docPr")).set("descr", _xml_safe(description))
    return run


class DocxProjector:
    def __init__(self, context: ProjectionContext):
        self.ctx = context
        self.palette = docx_palette(context.theme)
        self._block_handlers = {
            NodeKind.HEADING: self._heading,
            NodeKind.PARAGRAPH: self._paragraph,
            NodeKind.LIST: self._list,
            NodeKind.BLOCKQUOTE: self._blockquote,
            NodeKind.CODE_BLOCK: self._code_block,
            NodeKind.TABLE: self._table,
            NodeKind.RULE: self._rule,
            NodeKind.DISPLAY_MATH: self._display_math,
            NodeKind.CONTAINER: self._container,
        }
        self._inline_handlers = {
            NodeKind.TEXT: self._text,
            NodeKind.STRONG: lambda node: [text_run(_collapse(flat_text(node)), bold=True)],
            NodeKind.EMPHASIS: lambda node: [text_run(_collapse(flat_text(node)), italic=True)],
            NodeKind.STRIKE: lambda node: [text_run(_collapse(flat_text(node)), strike=True)],
            NodeKind.CODE: self._inline_code,
            NodeKind.LINK: self._link,
            NodeKind.BREAK: lambda node: [break_run()],
            NodeKind.IMAGE: self._image,
            NodeKind.INLINE_MATH: lambda node: self._math_items(node, display=False),
            NodeKind.SPAN: self._inline_children,
        }

    def project_fragment(self, html_fragment: str):
        soup = BeautifulSoup(html_fragment or "", "html.parser")
        return self.flow(soup.contents)

    def flow(self, nodes, style=None, keep_empty=False):
        """Project a mixed sequence of inline and block nodes.

        Consecutive inline nodes share one paragraph; a block node closes the
        open paragraph and emits its own elements.
        """
        out = []
        para = _ParagraphBuilder(style)
        for node in nodes:
            kind = classify(node)
            if kind is NodeKind.IGNORED:
                continue
            if kind in BLOCK_KINDS:
                if para.has_content():
                    out.append(para.build())
                para = _ParagraphBuilder(style)
                out.extend(self._block(kind, node, style))
            else:
                para.add(self._inline_handlers[kind](node))
        if para.has_content():
            out.append(para.build())
        elif keep_empty and not out:
            out.append(paragraph([empty_run()], style=style))
        return out

    def _block(self, kind, node, style):
        try:
            return self._block_handlers[kind](node, style)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning(f"Could not project <{node.name}> as {kind.value}, "
                           f"falling back to plain paragraphs: {e}")
            return self.flow(node.contents, style)

    # block handlers

    def _heading(self, node, style):
        return self.flow(node.contents, style=HEADING_STYLES[node.name.lower()], keep_empty=True)

    def _paragraph(self, node, style):
        return self.flow(node.contents, style=style, keep_empty=True)

    def _container(self, node, style):
        return self.flow(node.contents, style=style)

    def _blockquote(self, node, style):
        return self.flow(node.contents, style="Quote", keep_empty=True)

    def _list(self, node, style):
        ordered = node.name.lower() == "ol"
        list_style = "ListNumber" if ordered else "ListBullet"
        try:
            number = int(node.get("start", 1))
        except ValueError:
            number = 1
        out = []
        for li in node.find_all("li", recursive=False):
            elements = self.flow(li.contents, style=list_style, keep_empty=True)
            marker = marker_run(f"{number}." if ordered else "•")
            first = elements[0]
            if first.tag != qn("w:p"):
                elements.insert(0, paragraph([marker], style=list_style))
            else:
                ppr = first.find(qn("w:pPr"))
                first.insert(0 if ppr is None else 1, marker)
            out.extend(elements)
            number += 1
        return out

    def _code_block(self, node, style):
        text = node.get_text()
        if text.endswith("\n"):
            text = text[:-1]
        return [
            paragraph([text_run(line, font=CODE_FONT, color=self.palette.code_text)], style="CodeBlock")
            for line in text.split("\n")
        ]

    def _rule(self, node, style):
        return [paragraph([empty_run()], border=True)]

    def _display_math(self, node, style):
        return [paragraph(self._math_items(node, display=True), justify="center")]

    def _table(self, node, style):
        rows = [tr for tr in node.find_all("tr") if tr.find_parent("table") is node]
        if not rows:
            return []
        grid = [tr.find_all(["th", "td"], recursive=False) for tr in rows]
        columns = max(len(cells) for cells in grid) or 1
        cell_width = TEXT_WIDTH_TWIPS // columns

        tbl = OxmlElement("w:tbl")
        tbl_pr = _on(tbl, "w:tblPr")
        _on(tbl_pr, "w:tblStyle", val="TableGrid")
        _on(tbl_pr, "w:tblW", w=5000, type="pct")
        tbl_grid = _on(tbl, "w:tblGrid")
        for _ in range(columns):
            _on(tbl_grid, "w:gridCol", w=cell_width)

        for cells in grid:
            tr = _on(tbl, "w:tr")
            if cells and all(cell.name == "th" for cell in cells):
                _on(_on(tr, "w:trPr"), "w:tblHeader")
            for cell in cells:
                header = cell.name == "th"
                tc = _on(tr, "w:tc")
                tc_pr = _on(tc, "w:tcPr")
                _on(tc_pr, "w:tcW", w=cell_width, type="dxa")
                if header:
                    _on(tc_pr, "w:shd", val="clear", color="auto", fill=self.palette.table_header_fill)
                text = " ".join(flat_text(cell).split())
                tc.append(paragraph([text_run(text, bold=header)]))
            for _ in range(columns - len(cells)):
                tc = _on(tr, "w:tc")
                _on(_on(tc, "w:tcPr"), "w:tcW", w=cell_width, type="dxa")
                tc.append(paragraph([empty_run()]))
        return [tbl]

    # inline handlers

    def _text(self, node):
        text = _collapse(str(node))
        return [text_run(text)] if text else []

    def _inline_code(self, node):
        return [text_run(node.get_text(), font=CODE_FONT, shading=self.palette.code_bg)]

    def _link(self, node):
        return [text_run(_collapse(flat_text(node)), color=self.palette.link, underline=True)]

    def _image(self, node):
        alt = (node.get("alt") or "").strip()
        return [text_run(f"[{alt}]")] if alt else []

    def _inline_children(self, node):
        items = []
        for child in node.children:
            kind = classify(child)
            if kind is NodeKind.IGNORED:
                continue
            if kind is NodeKind.DISPLAY_MATH:
                items.extend(self._math_items(child, display=False))
            elif kind in BLOCK_KINDS:
                # paragraphs cannot nest: block content inside inline markup is inlined
                items.extend(self._inline_children(child))
            else:
                items.extend(self._inline_handlers[kind](child))
        return items

    def _math_items(self, node, display):
        latex = latex_source(node)
        if latex is None:
            return [text_run(_collapse(flat_text(node)))]
        latex = latex.strip()
        if not latex:
            return [empty_run()]
        if self.ctx.equation_mode is EquationMode.OMML:
            return self._omml_items(latex, display)
        try:
            svg = self.ctx.svg_renderer(latex, display)
        except MathRenderError as e:
            logger.warning(f"Equation kept as text: {e}")
            return [text_run(f"[{latex}]")]
        cx, cy = equation_extent(svg)
        image = self.ctx.add_image(svg)
        return [drawing_run(image, cx, cy, latex)]

    def _omml_items(self, latex, display):
        try:
            omml, tag = latex_to_omml(latex)
            math = parse_xml(omml)
        except (MathRenderError, etree.XMLSyntaxError) as e:
            logger.warning(f"Equation kept as text: {e}")
            return [text_run(f"[{latex}]")]
        if display and math.tag != qn("m:oMathPara"):
            wrapper = OxmlElement("m:oMathPara")
            wrapper.append(math)
            math = wrapper
        items = [math]
        if tag:
            items.append(tab_run(f"({tag})"))
        return items

    # document frame

    def title_block(self, title, author, date):
        out = [paragraph([text_run(title)], style="Title", justify="center")]
        if author:
            out.append(paragraph([text_run(f"By {author}")], style="Subtitle", justify="center"))
        out.append(paragraph([text_run(date or "", color=self.palette.date)], justify="center"))
        return out

    def toc_block(self, entries):
        if not entries:
            return []
        out = [paragraph([text_run("Table of Contents")], style="TOCHeading")]
        for entry in entries:
            out.append(paragraph([text_run(entry.title)], style=f"TOC{min(entry.level, 4)}"))
        return out


def section_properties(footer_rel_id=None):
    sect = OxmlElement("w:sectPr")
    if footer_rel_id:
        ref = _on(sect, "w:footerReference", type="default")
        ref.set(qn("r:id"), footer_rel_id)
    _on(sect, "w:pgSz", w=12240, h=15840)
    _on(sect, "w:pgMar", top=1440, right=1440, bottom=1440, left=1440,
        header=720, footer=720, gutter=0)
    return sect


def project(html_fragment: str, title: str = DEFAULT_TITLE, author: str = "", date: str = "",
            theme=Theme.COLOR, *, context: Optional[ProjectionContext] = None,
            toc_entries=None, page_numbers: bool = False) -> ProjectionResult:
    """Build ``word/document.xml`` for an HTML fragment.

    Returns the serialized document together with the equation images it
    references, in relationship-id order.
    """
    fixed = fixed_relationships(page_numbers)
    if context is None:
        context = ProjectionContext(theme=Theme(theme), fixed_relationship_count=len(fixed))
    projector = DocxProjector(context)

    document = parse_xml(
        f'<w:document {nsdecls("w", "r", "wp", "a", "pic", "m")}><w:body/></w:document>'
    )
    body = document.find(qn("w:body"))
    elements = projector.title_block(title, author, date)
    elements += projector.toc_block(toc_entries)
    elements += projector.project_fragment(html_fragment)
    for element in elements:
        body.append(element)

    footer_rel_id = None
    if page_numbers:
        footer_rel_id = next(rel_id for rel_id, rel_type, target in fixed if target == FOOTER_PART)
    body.append(section_properties(footer_rel_id))

    logger.debug(f"Projected {len(elements)} body elements and {len(context.media)} equation images")
    xml = etree.tostring(document, xml_declaration=True, encoding="UTF-8", standalone=True)
    return ProjectionResult(xml, list(context.media))
