"""Re-insertion of rendered equations into the parsed HTML.

The resolver works on the BeautifulSoup tree rather than on the HTML text,
so a placeholder is only ever matched inside text content: attribute values
and code are handled explicitly and never receive rendered markup.
"""
import html
import logging

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment

from aimath2doc.errors import MathRenderError
from aimath2doc.math_protect import DISPLAY, PLACEHOLDER_RE
from aimath2doc.math_render import render_mathml

logger = logging.getLogger(__name__)

MATH_DISPLAY_CLASS = "math-display"
MATH_INLINE_CLASS = "math-inline"
MATH_ERROR_CLASS = "math-error"
LATEX_ATTR = "data-latex"

CLASS_INJECTIONS = {
    "table": "formatted-table",
    "pre": "code-block",
    "blockquote": "styled-quote",
}

_CODE_TAGS = ["code", "pre"]


def _render_fragment(record, render) -> str:
    latex = record.raw_latex
    source = html.escape(latex)
    try:
        rendered = render(latex, record.display_mode)
    except MathRenderError as e:
        logger.warning(f"Equation {record.placeholder} failed to render: {e}")
        reason = html.escape(str(e.reason))
        if record.display_mode:
            return (f'<div class="{MATH_ERROR_CLASS}">LaTeX Error: {reason}'
                    f'<br/><code>{source}</code></div>')
        return f'<span class="{MATH_ERROR_CLASS}" title="{reason}">${source}$</span>'

    attr = html.escape(latex, quote=True)
    if record.display_mode:
        return f'<div class="{MATH_DISPLAY_CLASS}" {LATEX_ATTR}="{attr}">{rendered}</div>'
    return f'<span class="{MATH_INLINE_CLASS}" {LATEX_ATTR}="{attr}">{rendered}</span>'


class _Fragments:
    """Renders each equation once and hands out fresh copies of the result."""

    def __init__(self, equations, render):
        self.equations = equations
        self.render = render
        self._cache = {}

    def record(self, kind, index):
        return self.equations.lookup(kind, int(index))

    def node(self, record):
        key = (record.kind, record.index)
        if key not in self._cache:
            self._cache[key] = _render_fragment(record, self.render)
        fragment = BeautifulSoup(self._cache[key], "html.parser")
        return fragment.contents[0].extract()


def _only_placeholder(p):
    """The display placeholder a ``<p>`` consists of, if that is all it holds."""
    if len(p.contents) != 1 or not isinstance(p.contents[0], NavigableString):
        return None
    m = PLACEHOLDER_RE.fullmatch(p.contents[0].strip())
    if m and m.group(1) == DISPLAY:
        return m
    return None


def _replace_in_text(node, fragments):
    text = str(node)
    in_code = node.find_parent(_CODE_TAGS) is not None
    parts = []
    last = 0
    for m in PLACEHOLDER_RE.finditer(text):
        record = fragments.record(m.group(1), m.group(2))
        if record is None:
            continue
        if m.start() > last:
            parts.append(text[last:m.start()])
        if in_code:
            parts.append(record.source)
        else:
            parts.append(fragments.node(record))
        last = m.end()
    if not parts:
        return
    if last < len(text):
        parts.append(text[last:])

    # Adjacent plain strings are merged back into a single text node.
    merged = []
    for part in parts:
        if isinstance(part, str) and merged and isinstance(merged[-1], str):
            merged[-1] += part
        else:
            merged.append(part)
    node.replace_with(*[NavigableString(p) if isinstance(p, str) else p for p in merged])


def _restore_attributes(soup, fragments):
    def repl(m):
        record = fragments.record(m.group(1), m.group(2))
        return record.raw_latex if record is not None else m.group(0)

    for tag in soup.find_all(True):
        for name, value in list(tag.attrs.items()):
            if isinstance(value, str) and PLACEHOLDER_RE.search(value):
                tag[name] = PLACEHOLDER_RE.sub(repl, value)


def _is_blank(node):
    if isinstance(node, Tag):
        return node.name == "br"
    return not isinstance(node, Comment) and not str(node).strip()


def _trim_edges(tag):
    """Drop line breaks and whitespace at both ends of ``tag``, descending into
    the first and last child elements."""
    while tag.contents and _is_blank(tag.contents[0]):
        tag.contents[0].extract()
    while tag.contents and _is_blank(tag.contents[-1]):
        tag.contents[-1].extract()
    for edge in tag.contents[:1] + tag.contents[-1:]:
        if isinstance(edge, Tag) and edge.name not in _CODE_TAGS + ["math"] and not is_math_container(edge):
            _trim_edges(edge)


def _is_empty(tag):
    return not tag.get_text(strip=True) and tag.find(["img", "math", "span", "div"]) is None


def _split_paragraph(soup, block):
    """Lift a display container out of its ``<p>``.

    The paragraph is cut in two around ``block``; inline elements the block
    sat in (``<em>``, ``<a>``, ...) are repeated on the trailing side.
    """
    p = block.find_parent("p")
    after = []
    node = block
    while node.parent is not p:
        parent = node.parent
        shell = soup.new_tag(parent.name, attrs={k: v for k, v in parent.attrs.items() if k != "id"})
        for child in after + [s.extract() for s in list(node.next_siblings)]:
            shell.append(child)
        after = [shell]
        node = parent
    after += [s.extract() for s in list(node.next_siblings)]

    tail = soup.new_tag("p", attrs={k: v for k, v in p.attrs.items() if k != "id"})
    for child in after:
        tail.append(child)
    p.insert_after(block.extract())
    block.insert_after(tail)
    for para in (p, tail):
        _trim_edges(para)
        if _is_empty(para):
            para.decompose()


def inject_classes(soup):
    for tag_name, class_name in CLASS_INJECTIONS.items():
        for tag in soup.find_all(tag_name):
            classes = tag.get("class", [])
            if class_name not in classes:
                tag["class"] = list(classes) + [class_name]


def resolve(html_fragment: str, equations, render=render_mathml) -> str:
    """Swap every placeholder in ``html_fragment`` for its rendered equation.

    A paragraph that only wraps a display placeholder is replaced as a whole;
    all other occurrences (bare, inside list items or table cells, several in
    one text node) are replaced in place, and a display block that lands inside
    a paragraph splits it. Rendering failures are turned into a visible error
    fragment carrying the LaTeX source.
    """
    soup = BeautifulSoup(html_fragment, "html.parser")
    fragments = _Fragments(equations, render)

    for p in soup.find_all("p"):
        m = _only_placeholder(p)
        if not m:
            continue
        record = fragments.record(m.group(1), m.group(2))
        if record is not None and p.find_parent(_CODE_TAGS) is None:
            p.replace_with(fragments.node(record))

    for node in soup.find_all(string=PLACEHOLDER_RE):
        if isinstance(node, Comment):
            continue
        _replace_in_text(node, fragments)

    for block in soup.find_all("div", class_=[MATH_DISPLAY_CLASS, MATH_ERROR_CLASS]):
        if block.find_parent("p") is not None:
            _split_paragraph(soup, block)

    _restore_attributes(soup, fragments)
    inject_classes(soup)
    return str(soup)


def is_math_container(node) -> bool:
    if not isinstance(node, Tag):
        return False
    classes = node.get("class") or []
    return MATH_DISPLAY_CLASS in classes or MATH_INLINE_CLASS in classes
