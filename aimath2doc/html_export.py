import html
import re

from aimath2doc.config import DEFAULT_TITLE, Theme
from aimath2doc.themes import css_palette

HTML_MIME_TYPE = "text/html;charset=utf-8"


def download_filename(title: str, extension: str) -> str:
    """Attachment filename derived from the document title."""
    stem = re.sub(r"[^a-z0-9]", "-", (title or DEFAULT_TITLE).lower())
    return f"{stem}.{extension}"


def stylesheet(theme=Theme.COLOR) -> str:
    c = css_palette(theme)
    theme = Theme(theme)
    th_color = c.heading if theme is Theme.COLOR else c.text
    return f"""
    body {{
      font-family: 'Segoe UI', 'Calibri', 'Arial', sans-serif;
      font-size: 11pt;
      line-height: 1.6;
      max-width: 900px;
      margin: 0 auto;
      padding: 40px;
      color: {c.text};
      background-color: {c.page_background};
      background: {c.background};
    }}
    .document-header {{
      text-align: center;
      margin-bottom: 40px;
      padding-bottom: 20px;
      border-bottom: 2px solid {c.heading};
    }}
    .document-title {{ font-size: 24pt; font-weight: bold; color: {c.heading}; margin-bottom: 10px; }}
    .document-author {{ font-size: 11pt; color: {c.accent}; margin-bottom: 5px; }}
    .document-date {{ font-size: 10pt; opacity: 0.6; }}
    h1 {{ font-size: 20pt; color: {c.heading}; border-bottom: 1px solid {c.border}; padding-bottom: 5px; }}
    h2 {{ font-size: 16pt; color: {c.accent}; }}
    h3, h4, h5, h6 {{ color: {c.heading}; }}
    code {{
      font-family: 'Consolas', 'Courier New', monospace;
      background-color: {c.code};
      color: {c.code_text};
      padding: 2px 6px;
      border-radius: 3px;
      font-size: 10pt;
    }}
    pre, .codehilite {{
      font-family: 'Consolas', 'Courier New', monospace;
      background-color: {c.code};
      padding: 15px;
      border-radius: 5px;
      overflow-x: auto;
      border: 1px solid {c.border};
    }}
    .codehilite pre {{ padding: 0; border: none; margin: 0; }}
    pre code {{ background: transparent; padding: 0; }}
    table {{ width: 100%; border-collapse: collapse; margin: 15px 0; background: {c.table_bg}; }}
    th {{ background: {c.table_header}; color: {th_color}; font-weight: bold; }}
    th, td {{ padding: 8px; border: 1px solid {c.border}; text-align: left; }}
    tr:nth-child(even) {{ background: {c.table_stripe}; }}
    blockquote {{
      border-left: 4px solid {c.accent};
      margin: 10px 0;
      padding: 10px 15px;
      font-style: italic;
      opacity: 0.8;
      background: {c.quote_bg};
    }}
    a {{ color: {c.heading}; text-decoration: none; }}
    .math-display {{ margin: 20px 0; text-align: center; overflow-x: auto; }}
    .math-error {{ color: #dc2626; font-family: monospace; }}
    .table-of-contents {{ margin-bottom: 30px; }}
    .table-of-contents ul {{ list-style: none; padding-left: 0; }}
    .toc-level-2 {{ padding-left: 20px; }}
    .toc-level-3 {{ padding-left: 40px; }}
    .toc-level-4 {{ padding-left: 60px; }}
    .document-footer {{
      margin-top: 40px;
      padding-top: 10px;
      border-top: 1px solid {c.border};
      text-align: center;
      font-size: 9pt;
      opacity: 0.5;
    }}
"""


def standalone_document(fragment: str, title: str = DEFAULT_TITLE, author: str = "", date: str = "",
                        theme=Theme.COLOR, include_styles: bool = True, toc: str = "",
                        footer: bool = False) -> str:
    """Wrap a converted fragment in a complete HTML document.

    The title block and the table of contents (if given) precede the body;
    ``footer`` adds the generation note used by the PDF export.
    """
    title = title or DEFAULT_TITLE
    style = f"  <style>{stylesheet(theme)}  </style>\n" if include_styles else ""
    header = [f'    <div class="document-title">{html.escape(title)}</div>']
    if author:
        header.append(f'    <div class="document-author">By {html.escape(author)}</div>')
    if date:
        header.append(f'    <div class="document-date">{html.escape(date)}</div>')
    header_html = "\n".join(header)
    footer_html = ""
    if footer:
        footer_html = (f'  <div class="document-footer">Generated by aimath2doc'
                       f'{" on " + html.escape(date) if date else ""}</div>\n')
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{html.escape(title)}</title>
{style}</head>
<body>
  <div class="document-header">
{header_html}
  </div>
{toc}  <div class="document-content">
{fragment}
  </div>
{footer_html}</body>
</html>
"""
