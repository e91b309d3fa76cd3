import html.entities
import io
import logging
import re
import threading

import latex2mathml.converter
import mathml2omml  # type: ignore
import regex
from lxml import etree

from aimath2doc.errors import MathRenderError

logger = logging.getLogger(__name__)

MATHML_NS = "http://www.w3.org/1998/Math/MathML"
OMML_NS = "http://schemas.openxmlformats.org/officeDocument/2006/math"
W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
TEX_ENCODING = "application/x-tex"

MACROS = {
    "RR": r"\mathbb{R}",
    "NN": r"\mathbb{N}",
    "ZZ": r"\mathbb{Z}",
    "QQ": r"\mathbb{Q}",
    "CC": r"\mathbb{C}",
}
_MACRO_RE = re.compile(r"\\(" + "|".join(MACROS) + r")(?![a-zA-Z])")

SVG_FONT_SIZE = 12
SVG_DISPLAY_FONT_SIZE = 14

# matplotlib's mathtext parser keeps module level caches.
_MPL_LOCK = threading.Lock()


def expand_macros(latex: str) -> str:
    return _MACRO_RE.sub(lambda m: MACROS[m.group(1)], latex)


def render_mathml(latex: str, display: bool = False) -> str:
    """Render LaTeX to a MathML ``<math>`` element.

    The LaTeX source is kept in a ``<semantics>`` annotation so it can be
    recovered from the rendered markup. An empty body renders as empty math.
    """
    mode = "block" if display else "inline"
    if not latex.strip():
        root = etree.Element(f"{{{MATHML_NS}}}math", nsmap={None: MATHML_NS})
        root.set("display", mode)
    else:
        try:
            mathml = latex2mathml.converter.convert(expand_macros(latex), display=mode)
            root = etree.fromstring(mathml)
        except Exception as e:
            raise MathRenderError(latex, f"{type(e).__name__}: {e}") from e

    semantics = etree.Element(f"{{{MATHML_NS}}}semantics")
    mrow = etree.SubElement(semantics, f"{{{MATHML_NS}}}mrow")
    for child in list(root):
        mrow.append(child)
    annotation = etree.SubElement(semantics, f"{{{MATHML_NS}}}annotation")
    annotation.set("encoding", TEX_ENCODING)
    annotation.text = latex
    root.append(semantics)
    return etree.tostring(root, encoding="unicode")


def render_svg(latex: str, display: bool = False) -> bytes:
    """Render LaTeX to an SVG image with matplotlib's mathtext engine."""
    from matplotlib import mathtext
    from matplotlib.font_manager import FontProperties

    if not latex.strip():
        raise MathRenderError(latex, "empty equation")
    size = SVG_DISPLAY_FONT_SIZE if display else SVG_FONT_SIZE
    prop = FontProperties(size=size, math_fontfamily="cm")
    buf = io.BytesIO()
    try:
        with _MPL_LOCK:
            mathtext.math_to_image(f"${expand_macros(latex)}$", buf, prop=prop, format="svg")
    except Exception as e:
        raise MathRenderError(latex, f"{type(e).__name__}: {e}") from e
    return buf.getvalue()


_SVG_TAG_RE = re.compile(rb"<svg\b[^>]*>", re.S)
_LENGTH_RE = r'\s{}="\s*([0-9.]+)\s*(pt|px|in|mm|cm)?\s*"'
_VIEWBOX_RE = re.compile(rb'\sviewBox="\s*[-0-9.]+[\s,]+[-0-9.]+[\s,]+([0-9.]+)[\s,]+([0-9.]+)\s*"')

_PT_PER_UNIT = {
    "pt": 1.0,
    "px": 0.75,
    "in": 72.0,
    "mm": 72 / 25.4,
    "cm": 72 / 2.54,
}


def svg_size_pt(svg: bytes):
    """Width and height of an SVG in points, or ``None`` when unreadable.

    Uses the root ``width``/``height`` attributes, falling back to the
    ``viewBox`` whose user units are taken as points.
    """
    m = _SVG_TAG_RE.search(svg)
    if not m:
        return None
    tag = m.group(0).decode("utf-8", "replace")
    w = re.search(_LENGTH_RE.format("width"), tag)
    h = re.search(_LENGTH_RE.format("height"), tag)
    try:
        if w and h:
            width = float(w.group(1)) * _PT_PER_UNIT[w.group(2) or "px"]
            height = float(h.group(1)) * _PT_PER_UNIT[h.group(2) or "px"]
        else:
            vb = _VIEWBOX_RE.search(m.group(0))
            if not vb:
                return None
            width, height = float(vb.group(1)), float(vb.group(2))
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


# --- OMML (editable Word equations) ---------------------------------------

_TAG_RE = re.compile(r"\\tag\{([^{}]+)\}\s*$")
_TEXT_BLOCK_RE = r"\\text\{((?:[^{}]+|\{(?1)\})*)\}"


def split_tag(latex: str):
    """Cut a trailing ``\\tag{...}`` off, returning ``(latex, tag_text)``."""
    m = _TAG_RE.search(latex)
    if not m:
        return latex, None
    return latex[:m.start()].rstrip(), m.group(1).strip()


def add_sqrt_degree(latex: str) -> str:
    # Word renders \sqrt{x} without a degree box only if the degree is explicit
    result = ''
    i = 0
    while i < len(latex):
        if latex[i:i + 5] == '\\sqrt':
            j = i + 5
            while j < len(latex) and latex[j] == ' ':
                j += 1
            if j < len(latex) and latex[j] == '{':
                result += '\\sqrt[2]{'
                i = j + 1
                continue
            result += latex[i:j]
            i = j
        else:
            result += latex[i]
            i += 1
    return result


def pad_text_blocks(latex: str) -> str:
    return regex.sub(_TEXT_BLOCK_RE, lambda m: f"\\text{{ {m.group(1).strip()} }}", latex)


def remove_redundant_boxes(omml: str) -> str:
    """Unwrap ``m:box/m:e`` wrappers that mathml2omml leaves around runs."""
    wrapped = f'<wrapper xmlns:m="{OMML_NS}" xmlns:w="{W_NS}">{omml}</wrapper>'
    try:
        root = etree.fromstring(wrapped)
    except etree.XMLSyntaxError as e:
        logger.debug(f"OMML left as is, not well-formed: {e}")
        return omml
    box = f"{{{OMML_NS}}}box"
    e_tag = f"{{{OMML_NS}}}e"

    def unwrap(parent):
        for child in list(parent):
            unwrap(child)
            if child.tag != box:
                continue
            elems = list(child)
            if len(elems) == 1 and elems[0].tag == e_tag:
                index = parent.index(child)
                for offset, grandchild in enumerate(list(elems[0])):
                    parent.insert(index + offset, grandchild)
                parent.remove(child)

    unwrap(root)
    return "".join(etree.tostring(e, encoding="unicode") for e in root)


def latex_to_omml(latex: str):
    """Convert LaTeX to an ``m:oMath`` XML string.

    Returns ``(omml, tag_text)``; ``tag_text`` is the equation number taken
    from ``\\tag{}``, or ``None``.
    """
    latex, tag_text = split_tag(expand_macros(latex))
    fixed = re.sub(r'\\vec\{([^}]+)\}', r'\\overset{\\rightarrow}{\1}', latex)
    fixed = add_sqrt_degree(fixed)
    fixed = pad_text_blocks(fixed)
    fixed = re.sub(r'\\+,', r'\\THINSPACE ', fixed)
    try:
        mathml = latex2mathml.converter.convert(fixed)
        mathml = mathml.replace(r'<mi>\THINSPACE</mi>', '<mspace width="0.167em"/>')
        mathml = mathml.replace(r'<mo>\THINSPACE</mo>', '<mspace width="0.167em"/>')
        omml = mathml2omml.convert(mathml, html.entities.name2codepoint)
    except Exception as e:
        raise MathRenderError(latex, f"{type(e).__name__}: {e}") from e
    omml = remove_redundant_boxes(omml).strip()
    m = re.match(r"<m:oMath(?:Para)?\b", omml)
    if m:
        # the fragment is parsed on its own, so the root declares both prefixes
        root_tag = omml.split(">", 1)[0]
        decls = ""
        if "xmlns:m=" not in root_tag:
            decls += f' xmlns:m="{OMML_NS}"'
        if "xmlns:w=" not in root_tag:
            decls += f' xmlns:w="{W_NS}"'
        omml = m.group(0) + decls + omml[m.end():]
    return omml, tag_text
