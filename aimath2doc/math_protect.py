"""Extraction of LaTeX spans from Markdown before it reaches the parser.

Equations pasted from chat assistants come in several delimiter dialects.
They are normalized to ``$$...$$`` / ``$...$`` and then swapped for opaque
placeholder tokens so that the Markdown parser cannot turn ``_`` or ``*``
inside a formula into emphasis.
"""
import re
from dataclasses import dataclass, field

import regex

DISPLAY = "DISPLAY"
INLINE = "INLINE"

PLACEHOLDER_RE = re.compile(r"%%%(DISPLAY|INLINE)_MATH_(\d+)%%%")

_BRACKET_DISPLAY_RE = re.compile(r"\\\[([\s\S]*?)\\\]")
_PAREN_INLINE_RE = re.compile(r"\\\((.*?)\\\)")
# ( \frac{a}{(b+c)} ) - a parenthesis, whitespace, then a backslash command.
# Nested parentheses inside the formula are allowed, newlines are not.
_PAREN_COMMAND_RE = regex.compile(
    r"\(\s+(\\[a-zA-Z]+(?:[^()\n]|(?<group>\((?:[^()\n]|(?&group))*\)))*?)\s+\)"
)
_DISPLAY_RE = re.compile(r"\$\$([\s\S]*?)\$\$")
_INLINE_RE = re.compile(r"\$([^$\n]+?)\$")


def placeholder(kind, index):
    return f"%%%{kind}_MATH_{index}%%%"


@dataclass(frozen=True)
class EquationRecord:
    index: int
    raw_latex: str
    display_mode: bool

    @property
    def kind(self):
        return DISPLAY if self.display_mode else INLINE

    @property
    def placeholder(self):
        return placeholder(self.kind, self.index)

    @property
    def source(self):
        """The equation with canonical delimiters, as it would be typed."""
        if self.display_mode:
            return f"$${self.raw_latex}$$"
        return f"${self.raw_latex}$"


@dataclass
class Equations:
    display: list = field(default_factory=list)
    inline: list = field(default_factory=list)

    def __len__(self):
        return len(self.display) + len(self.inline)

    def lookup(self, kind, index):
        records = self.display if kind == DISPLAY else self.inline
        if 0 <= index < len(records):
            return records[index]
        return None


def normalize_delimiters(markdown: str) -> str:
    r"""Rewrite ``\[..\]``, ``\(..\)`` and ``( \cmd .. )`` into dollar delimiters."""
    markdown = _BRACKET_DISPLAY_RE.sub(lambda m: f"$${m.group(1)}$$", markdown)
    markdown = _PAREN_INLINE_RE.sub(lambda m: f"${m.group(1)}$", markdown)
    markdown = _PAREN_COMMAND_RE.sub(lambda m: f"${m.group(1).strip()}$", markdown)
    return markdown


def protect(markdown: str):
    """Replace every equation by a placeholder token.

    Returns ``(protected_markdown, equations)``. Display placeholders are put
    on a line of their own so the parser sees them as a block.
    """
    equations = Equations()
    markdown = normalize_delimiters(markdown)

    def display_repl(m):
        record = EquationRecord(len(equations.display), m.group(1).strip(), True)
        equations.display.append(record)
        return f"\n{record.placeholder}\n"

    def inline_repl(m):
        record = EquationRecord(len(equations.inline), m.group(1).strip(), False)
        equations.inline.append(record)
        return record.placeholder

    markdown = _DISPLAY_RE.sub(display_repl, markdown)
    markdown = _INLINE_RE.sub(inline_repl, markdown)
    return markdown, equations


def restore(text: str, equations, render=None) -> str:
    """Substitute placeholders in ``text`` with ``render(record)``.

    ``render`` defaults to the delimited source, which undoes :func:`protect`
    apart from delimiter normalization.
    """
    if render is None:
        render = lambda record: record.source

    def repl(m):
        record = equations.lookup(m.group(1), int(m.group(2)))
        if record is None:
            return m.group(0)
        return render(record)

    return PLACEHOLDER_RE.sub(repl, text)
