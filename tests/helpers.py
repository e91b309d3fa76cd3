import html
import io
import zipfile

from lxml import etree

from aimath2doc.errors import MathRenderError

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"

NSMAP = {
    "w": W_NS,
    "r": R_NS,
    "wp": "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "pic": "http://schemas.openxmlformats.org/drawingml/2006/picture",
    "m": "http://schemas.openxmlformats.org/officeDocument/2006/math",
    "asvg": "http://schemas.microsoft.com/office/drawing/2016/SVG/main",
    "rel": PKG_REL_NS,
    "ct": CT_NS,
}

SAMPLE_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="20pt" height="10pt" '
    b'viewBox="0 0 20 10" version="1.1"><path d="M0 0L20 10"/></svg>'
)


def w(tag):
    return f"{{{W_NS}}}{tag}"


def fake_mathml(latex, display=False):
    mode = "block" if display else "inline"
    return f'<math display="{mode}"><mi>{html.escape(latex)}</mi></math>'


def failing_render(latex, display=False):
    raise MathRenderError(latex, "Undefined control sequence")


def fake_svg(latex, display=False):
    return SAMPLE_SVG




def paragraph_text(p):
    return "".join(t.text or "" for t in p.iter(w("t")))


def paragraph_style(p):
    style = p.find(f"{w('pPr')}/{w('pStyle')}")
    return style.get(w("val")) if style is not None else None


def body_paragraphs(document_xml):
    root = etree.fromstring(document_xml)
    body = root.find(w("body"))
    return [el for el in body if el.tag == w("p")]


def read_part(package, name):
    with zipfile.ZipFile(io.BytesIO(package)) as zf:
        return zf.read(name)


def image_relationships(package):
    rels = etree.fromstring(read_part(package, "word/_rels/document.xml.rels"))
    return [
        (rel.get("Id"), rel.get("Target"))
        for rel in rels.findall("rel:Relationship", NSMAP)
        if rel.get("Type").endswith("/image")
    ]


def embedded_ids(document_xml):
    root = etree.fromstring(document_xml)
    return [blip.get(f"{{{R_NS}}}embed") for blip in root.iterfind(".//a:blip", NSMAP)]
