import html
import logging
import math
import re
from dataclasses import dataclass

import markdown
from markdown.extensions.toc import slugify, unique

from aimath2doc.errors import MarkdownConversionError
from aimath2doc.math_protect import protect, restore
from aimath2doc.math_render import render_mathml
from aimath2doc.resolver import resolve

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists", "nl2br", "toc"]

WORDS_PER_MINUTE = 200


def heading_slug(title: str, separator: str, equations) -> str:
    """Heading id for a protected ``title``, built from the equation source."""
    return slugify(restore(title, equations), separator)


def markdown_to_html(text: str, highlight_style=None, equations=None) -> str:
    """Run the Markdown parser alone; ``text`` must already be protected."""
    extensions = list(MARKDOWN_EXTENSIONS)
    configs = {}
    if equations is not None:
        configs["toc"] = {"slugify": lambda value, separator: heading_slug(value, separator, equations)}
    if highlight_style:
        extensions.append("codehilite")
        configs["codehilite"] = {
            "noclasses": True,
            "pygments_style": highlight_style,
            "guess_lang": False,
        }
    return markdown.markdown(text, extensions=extensions, extension_configs=configs)


def convert_markdown(text: str, highlight_style=None, render=render_mathml, strict=False) -> str:
    """Convert Markdown with embedded LaTeX into an HTML fragment.

    A failure inside the Markdown parser replaces the whole output with an
    error paragraph, or raises :class:`MarkdownConversionError` when
    ``strict`` is set. Equation failures never get this far: they are
    reported in place by the resolver.
    """
    if not text:
        return ""
    protected, equations = protect(text)
    logger.debug(f"Protected {len(equations.display)} display and "
                 f"{len(equations.inline)} inline equations")
    try:
        body = markdown_to_html(protected, highlight_style=highlight_style, equations=equations)
    except Exception as e:
        logger.exception("Markdown conversion error")
        if strict:
            raise MarkdownConversionError(str(e)) from e
        return f'<p class="error">Error converting markdown: {html.escape(str(e))}</p>'
    return resolve(body, equations, render=render)


# --- table of contents ----------------------------------------------------

@dataclass(frozen=True)
class TocEntry:
    level: int
    title: str
    anchor: str


_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


def _strip_inline_markup(text):
    text = re.sub(r"!\[([^\]]*)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"(\*\*?)(.+?)\1", r"\2", text)
    # underscores only emphasize at word boundaries
    text = re.sub(r"(?<!\w)(__?)(.+?)\1(?!\w)", r"\2", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    return text


def generate_toc(text: str, max_level: int = 4):
    """Headings of ``text`` as :class:`TocEntry` items.

    Anchors are computed the way the parser's ``toc`` extension computes
    heading ids, so they point at the converted HTML. Headings are read from
    the protected text, where equations already carry their document-wide
    placeholder numbers.
    """
    protected, equations = protect(text)
    entries = []
    used = set()
    in_fence = False
    for line in protected.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        m = _HEADER_RE.match(line)
        if not m:
            continue
        title = _strip_inline_markup(m.group(2).strip())
        anchor = unique(heading_slug(title, "-", equations), used)
        level = len(m.group(1))
        if level <= max_level:
            entries.append(TocEntry(level, restore(title, equations), anchor))
    return entries


def toc_html(entries) -> str:
    if not entries:
        return ""
    lines = ['<div class="table-of-contents">', "<h2>Table of Contents</h2>", "<ul>"]
    for entry in entries:
        indent = "  " * (entry.level - 1)
        lines.append(f'{indent}<li class="toc-level-{entry.level}">'
                     f'<a href="#{html.escape(entry.anchor)}">{html.escape(entry.title)}</a></li>')
    lines.extend(["</ul>", "</div>", ""])
    return "\n".join(lines)


# --- statistics -----------------------------------------------------------

@dataclass(frozen=True)
class MarkdownStats:
    words: int
    characters: int
    lines: int
    paragraphs: int
    headings: int
    reading_time: int


def to_plain_text(text: str) -> str:
    """Strip Markdown syntax, keeping the readable text."""
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.M)
    text = re.sub(r"!\[([^\]]*)\]\([^)]+\)", "", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"(\*\*|__)(.*?)\1", r"\2", text)
    text = re.sub(r"(\*|_)(.*?)\1", r"\2", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^(-{3,}|_{3,}|\*{3,})$", "", text, flags=re.M)
    text = re.sub(r"^>\s+", "", text, flags=re.M)
    return text.strip()


def markdown_stats(text: str) -> MarkdownStats:
    words = len(to_plain_text(text).split())
    return MarkdownStats(
        words=words,
        characters=len(text),
        lines=len(text.split("\n")),
        paragraphs=len([p for p in re.split(r"\n\n+", text) if p.strip()]),
        headings=len(re.findall(r"^#{1,6}\s+", text, flags=re.M)),
        reading_time=math.ceil(words / WORDS_PER_MINUTE),
    )
