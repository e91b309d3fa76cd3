from bs4 import BeautifulSoup
from lxml import etree

from aimath2doc import docx_projector
from aimath2doc.config import EquationMode, Theme
from aimath2doc.converter import TocEntry, convert_markdown
from aimath2doc.docx_projector import (
    DEFAULT_EQUATION_EXTENT,
    NodeKind,
    ProjectionContext,
    classify,
    equation_extent,
    project,
)
from aimath2doc.export import _latex_only

from helpers import (
    NSMAP,
    R_NS,
    SAMPLE_SVG,
    body_paragraphs,
    embedded_ids,
    fake_svg,
    failing_render,
    paragraph_style,
    paragraph_text,
    w,
)


def run(html_fragment, **kwargs):
    context = kwargs.pop("context", None) or ProjectionContext(svg_renderer=fake_svg)
    return project(html_fragment, "Doc", context=context, **kwargs)


def content_paragraphs(result):
    # title and date paragraphs come first
    return body_paragraphs(result.document_xml)[2:]


def assert_no_nested_paragraphs(document_xml):
    root = etree.fromstring(document_xml)
    for p in root.iter(w("p")):
        assert next(p.iterancestors(w("p")), None) is None
    for r in root.iter(w("r")):
        assert next(r.iterancestors(w("p")), None) is not None


def test_title_author_and_date():
    result = project("", "My Title", "Ann", "1/2/2024", Theme.COLOR)
    title, author, date = body_paragraphs(result.document_xml)
    assert paragraph_style(title) == "Title"
    assert paragraph_text(title) == "My Title"
    assert paragraph_text(author) == "By Ann"
    assert paragraph_style(author) == "Subtitle"
    assert paragraph_text(date) == "1/2/2024"
    assert date.find(f"{w('pPr')}/{w('jc')}").get(w("val")) == "center"
    assert date.find(f".//{w('color')}").get(w("val")) == "7F7F7F"


def test_date_color_follows_theme():
    result = project("", "T", "", "today", Theme.BLACK_AND_WHITE)
    date = body_paragraphs(result.document_xml)[-1]
    assert date.find(f".//{w('color')}").get(w("val")) == "404040"


def test_headings_map_to_styles():
    html = "".join(f"<h{i}>H{i}</h{i}>" for i in range(1, 7))
    styles = [paragraph_style(p) for p in content_paragraphs(run(html))]
    assert styles == ["Heading1", "Heading2", "Heading3", "Heading4", "Heading4", "Heading4"]


def test_empty_paragraph_has_explicit_run():
    [p] = content_paragraphs(run("<p></p>"))
    assert p.find(f"{w('r')}/{w('t')}") is not None


def test_inline_styles():
    [p] = content_paragraphs(run(
        '<p>a <strong>b</strong> <em>c</em> <del>d</del> <code>e</code> <a href="x">f</a></p>'
    ))
    runs = {paragraph_text(r): r.find(w("rPr")) for r in p.iter(w("r"))}
    assert runs["b"].find(w("b")) is not None
    assert runs["c"].find(w("i")) is not None
    assert runs["d"].find(w("strike")) is not None
    assert runs["e"].find(w("rFonts")).get(w("ascii")) == "Consolas"
    assert runs["e"].find(w("shd")) is not None
    assert runs["f"].find(w("u")).get(w("val")) == "single"
    assert runs["f"].find(w("color")).get(w("val")) == "0563C1"
    assert paragraph_text(p) == "a b c d e f"


def test_nested_inline_styles_flatten_to_outer():
    [p] = content_paragraphs(run("<p><strong>bold <em>both</em></strong></p>"))
    [r] = p.findall(w("r"))
    assert paragraph_text(r) == "bold both"
    assert r.find(f"{w('rPr')}/{w('b')}") is not None


def test_line_break_stays_in_paragraph():
    [p] = content_paragraphs(run("<p>one<br/>\ntwo</p>"))
    assert p.find(f".//{w('br')}") is not None
    texts = [t.text for t in p.iter(w("t"))]
    assert texts == ["one", "two"]


def test_lists_get_markers_and_styles():
    paras = content_paragraphs(run('<ul><li>a</li><li>b</li></ul><ol start="3"><li>c</li></ol>'))
    assert [paragraph_style(p) for p in paras] == ["ListBullet", "ListBullet", "ListNumber"]
    assert [paragraph_text(p) for p in paras] == ["•a", "•b", "3.c"]
    assert paras[0].find(f".//{w('tab')}") is not None


def test_list_item_with_paragraphs_and_nested_list():
    html = "<ul><li><p>first</p><p>second</p><ul><li>inner</li></ul></li></ul>"
    result = run(html)
    assert_no_nested_paragraphs(result.document_xml)
    texts = [paragraph_text(p) for p in content_paragraphs(result)]
    assert texts == ["•first", "second", "•inner"]


def test_blockquote_paragraphs_use_quote_style():
    paras = content_paragraphs(run("<blockquote><p>one</p><p>two</p></blockquote>"))
    assert [paragraph_style(p) for p in paras] == ["Quote", "Quote"]


def test_code_block_keeps_blank_lines():
    paras = content_paragraphs(run("<pre><code>a = 1\n\n  b = 2\n</code></pre>"))
    assert [paragraph_style(p) for p in paras] == ["CodeBlock"] * 3
    assert [paragraph_text(p) for p in paras] == ["a = 1", "", "  b = 2"]
    blank = paras[1].find(f"{w('r')}/{w('t')}")
    assert blank is not None
    assert blank.get("{http://www.w3.org/XML/1998/namespace}space") == "preserve"


def test_table_scenario():
    html = convert_markdown("| Name | Value |\n|---|---|\n| x | 1 |", render=_latex_only)
    root = etree.fromstring(run(html).document_xml)
    [tbl] = root.iter(w("tbl"))
    header, data = tbl.findall(w("tr"))
    assert header.find(f"{w('trPr')}/{w('tblHeader')}") is not None
    for tc in header.findall(w("tc")):
        assert tc.find(f"{w('tcPr')}/{w('shd')}").get(w("fill")) == "DEEAF6"
        assert tc.find(f".//{w('rPr')}/{w('b')}") is not None
    assert [paragraph_text(tc) for tc in header.findall(w("tc"))] == ["Name", "Value"]
    assert [paragraph_text(tc) for tc in data.findall(w("tc"))] == ["x", "1"]
    for tc in data.findall(w("tc")):
        assert tc.find(f"{w('tcPr')}/{w('shd')}") is None
    assert tbl.find(f"{w('tblPr')}/{w('tblStyle')}").get(w("val")) == "TableGrid"


def test_ragged_table_rows_are_padded():
    root = etree.fromstring(run("<table><tr><td>a</td><td>b</td></tr><tr><td>c</td></tr></table>").document_xml)
    rows = list(root.iter(w("tr")))
    assert [len(r.findall(w("tc"))) for r in rows] == [2, 2]


def test_horizontal_rule_is_bordered_paragraph():
    [p] = content_paragraphs(run("<hr/>"))
    bottom = p.find(f"{w('pPr')}/{w('pBdr')}/{w('bottom')}")
    assert bottom.get(w("val")) == "single"


def test_image_becomes_alt_text():
    [p] = content_paragraphs(run('<p>see <img alt="diagram" src="d.png"/></p>'))
    assert paragraph_text(p) == "see [diagram]"


def test_unknown_tags_are_wrapped_in_a_paragraph():
    paras = content_paragraphs(run("<custom-block>loose <b>text</b></custom-block> text at top"))
    assert [paragraph_text(p) for p in paras] == ["loose text text at top"]


def test_block_inside_inline_is_flattened():
    result = run("<span>a <div>b</div> c</span>")
    assert_no_nested_paragraphs(result.document_xml)
    assert [paragraph_text(p) for p in content_paragraphs(result)] == ["a b c"]


def test_structure_never_nests_paragraphs():
    html = (
        "<div><p>intro <span><p>inner</p></span></p>"
        "<ul><li>a<blockquote><p>q</p><pre><code>x\ny</code></pre></blockquote></li></ul>"
        '<table><tr><td><p>cell</p><div class="math-display" data-latex="z"></div></td></tr></table>'
        '<li><div class="math-display" data-latex="w"></div> tail</li>'
        "<h2>t <ul><li>odd</li></ul></h2></div>"
    )
    assert_no_nested_paragraphs(run(html).document_xml)


def test_equations_become_drawings_with_sequential_ids():
    html = ('<p><span class="math-inline" data-latex="a"></span> and '
            '<span class="math-inline" data-latex="b"></span></p>'
            '<div class="math-display" data-latex="c"></div>')
    context = ProjectionContext(svg_renderer=fake_svg)
    result = run(html, context=context)
    assert embedded_ids(result.document_xml) == ["rId4", "rId5", "rId6"]
    assert [(m.index, m.rel_id, m.target) for m in result.media] == [
        (1, "rId4", "media/math1.svg"),
        (2, "rId5", "media/math2.svg"),
        (3, "rId6", "media/math3.svg"),
    ]
    root = etree.fromstring(result.document_xml)
    svg_blips = root.findall(".//asvg:svgBlip", NSMAP)
    assert [b.get(f"{{{R_NS}}}embed") for b in svg_blips] == ["rId4", "rId5", "rId6"]
    extent = root.find(".//wp:extent", NSMAP)
    assert (extent.get("cx"), extent.get("cy")) == ("254000", "127000")
    doc_pr_ids = [d.get("id") for d in root.iterfind(".//wp:docPr", NSMAP)]
    assert doc_pr_ids == ["1", "2", "3"]


def test_display_equation_paragraph_is_centered():
    [p] = content_paragraphs(run('<div class="math-display" data-latex="c"></div>'))
    assert p.find(f"{w('pPr')}/{w('jc')}").get(w("val")) == "center"
    assert p.find(f".//{w('drawing')}") is not None


def test_page_numbers_shift_image_ids():
    result = run('<span class="math-inline" data-latex="a"></span>',
                 context=ProjectionContext(svg_renderer=fake_svg, fixed_relationship_count=4),
                 page_numbers=True)
    assert embedded_ids(result.document_xml) == ["rId5"]
    root = etree.fromstring(result.document_xml)
    ref = root.find(f".//{w('sectPr')}/{w('footerReference')}")
    assert ref.get(f"{{{R_NS}}}id") == "rId4"


def test_default_context_counts_footer_relationship():
    # no context given: numbering starts after the footer relationship
    result = project('<span class="math-inline" data-latex="a"></span>', "Doc", page_numbers=True)
    assert embedded_ids(result.document_xml) == ["rId5"]
    assert len(result.media) == 1


def test_render_failure_falls_back_to_bracketed_latex():
    context = ProjectionContext(svg_renderer=failing_render)
    result = run('<p>x <span class="math-inline" data-latex="\\bad"></span></p>', context=context)
    [p] = content_paragraphs(result)
    assert paragraph_text(p) == "x [\\bad]"
    assert result.media == []


def test_failed_equation_does_not_consume_an_id():
    calls = []

    def flaky(latex, display=False):
        calls.append(latex)
        if latex == "bad":
            return failing_render(latex, display)
        return SAMPLE_SVG

    html = "".join(f'<span class="math-inline" data-latex="{x}"></span>' for x in ("a", "bad", "c"))
    result = run(html, context=ProjectionContext(svg_renderer=flaky))
    assert embedded_ids(result.document_xml) == ["rId4", "rId5"]
    assert calls == ["a", "bad", "c"]


def test_latex_recovered_from_annotation():
    html = ('<span class="math-inline"><math><semantics><mrow><mi>x</mi></mrow>'
            '<annotation encoding="application/x-tex">x^2</annotation></semantics></math></span>')
    seen = []

    def recording(latex, display=False):
        seen.append(latex)
        return SAMPLE_SVG

    run(html, context=ProjectionContext(svg_renderer=recording))
    assert seen == ["x^2"]


def test_unreadable_svg_size_uses_default_extent():
    assert equation_extent(b"<svg></svg>") == DEFAULT_EQUATION_EXTENT
    assert equation_extent(b"not svg") == DEFAULT_EQUATION_EXTENT


def test_wide_equation_is_scaled_down():
    cx, cy = equation_extent(b'<svg width="864pt" height="20pt"></svg>')
    assert cx == docx_projector.MAX_EQUATION_WIDTH
    assert cy == 127000


def test_omml_mode(monkeypatch):
    omml = ('<m:oMath xmlns:m="http://schemas.openxmlformats.org/officeDocument/2006/math">'
            '<m:r><m:t>x</m:t></m:r></m:oMath>')
    monkeypatch.setattr(docx_projector, "latex_to_omml", lambda latex: (omml, "1"))
    context = ProjectionContext(equation_mode=EquationMode.OMML)
    result = run('<div class="math-display" data-latex="x \\tag{1}"></div>'
                 '<p><span class="math-inline" data-latex="x"></span></p>', context=context)
    root = etree.fromstring(result.document_xml)
    assert len(root.findall(".//m:oMathPara/m:oMath", NSMAP)) == 1
    assert len(root.findall(".//m:oMath", NSMAP)) == 2
    assert result.media == []
    assert "(1)" in paragraph_text(content_paragraphs(result)[0])


def test_toc_block():
    result = run("", toc_entries=[TocEntry(1, "Intro", "intro"), TocEntry(5, "Deep", "deep")])
    paras = content_paragraphs(result)
    assert [paragraph_style(p) for p in paras] == ["TOCHeading", "TOC1", "TOC4"]
    assert paragraph_text(paras[0]) == "Table of Contents"


def test_invalid_xml_characters_are_dropped():
    [p] = content_paragraphs(run("<p>a\x01b</p>"))
    assert paragraph_text(p) == "ab"


def test_contexts_are_independent():
    html = '<span class="math-inline" data-latex="a"></span>'
    first = run(html)
    second = run(html)
    assert embedded_ids(first.document_xml) == embedded_ids(second.document_xml) == ["rId4"]


def test_classify():
    soup = BeautifulSoup('<p></p><h5></h5><x-foo></x-foo><section></section>'
                         '<span class="math-inline"></span><div class="math-display"></div>',
                         "html.parser")
    assert [classify(n) for n in soup.contents] == [
        NodeKind.PARAGRAPH,
        NodeKind.HEADING,
        NodeKind.SPAN,
        NodeKind.CONTAINER,
        NodeKind.INLINE_MATH,
        NodeKind.DISPLAY_MATH,
    ]
