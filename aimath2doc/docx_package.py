"""Zip container for the projected document.

Every part is generated here except ``word/document.xml`` and the equation
images, which come from :mod:`aimath2doc.docx_projector`.
"""
import io
import logging
import zipfile
from datetime import datetime, timezone
from html import escape

from docx.opc.constants import CONTENT_TYPE as CT
from docx.opc.constants import RELATIONSHIP_TYPE as RT

from aimath2doc.config import DEFAULT_TITLE, Compression, Theme
from aimath2doc.themes import docx_palette

logger = logging.getLogger(__name__)

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
SVG_CONTENT_TYPE = "image/svg+xml"

W_DECL = 'xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'
R_DECL = 'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships"'
XML_HEAD = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'

# Fixed timestamp for zip entries so identical input gives identical bytes.
ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)

FOOTER_PART = "footer1.xml"


def fixed_relationships(page_numbers=False):
    """Document relationships declared ahead of the equation images.

    Returned as ``(rel_id, type, target)``; image ids continue after these.
    """
    rels = [
        (RT.STYLES, "styles.xml"),
        (RT.FONT_TABLE, "fontTable.xml"),
        (RT.SETTINGS, "settings.xml"),
    ]
    if page_numbers:
        rels.append((RT.FOOTER, FOOTER_PART))
    return [(f"rId{i}", rel_type, target) for i, (rel_type, target) in enumerate(rels, 1)]


# --- style sheet ----------------------------------------------------------

def _paragraph_style(style_id, name, ppr="", rpr="", based_on="Normal", next_style=None, extra=""):
    parts = [f'<w:style w:type="paragraph" w:styleId="{style_id}">', f'<w:name w:val="{name}"/>']
    if based_on:
        parts.append(f'<w:basedOn w:val="{based_on}"/>')
    if next_style:
        parts.append(f'<w:next w:val="{next_style}"/>')
    parts.append(extra)
    parts.append('<w:qFormat/>')
    if ppr:
        parts.append(f"<w:pPr>{ppr}</w:pPr>")
    if rpr:
        parts.append(f"<w:rPr>{rpr}</w:rPr>")
    parts.append("</w:style>")
    return "".join(parts)


def _heading(level, size, color, italic=False):
    rpr = f'<w:b/><w:bCs/>{"<w:i/>" if italic else ""}<w:color w:val="{color}"/><w:sz w:val="{size}"/><w:szCs w:val="{size}"/>'
    before = {1: 480, 2: 360, 3: 280, 4: 240}[level]
    ppr = (f'<w:keepNext/><w:keepLines/><w:spacing w:before="{before}" w:after="120"/>'
           f'<w:outlineLvl w:val="{level - 1}"/>')
    return _paragraph_style(f"Heading{level}", f"heading {level}", ppr, rpr, next_style="Normal")


def styles_xml(theme=Theme.COLOR) -> bytes:
    """The style sheet for ``theme``; a pure function of its argument."""
    c = docx_palette(theme)
    styles = [
        '<w:docDefaults><w:rPrDefault><w:rPr>'
        '<w:rFonts w:ascii="Calibri" w:hAnsi="Calibri" w:eastAsia="Calibri" w:cs="Calibri"/>'
        '<w:sz w:val="22"/><w:szCs w:val="22"/><w:lang w:val="en-US"/>'
        '</w:rPr></w:rPrDefault>'
        '<w:pPrDefault><w:pPr><w:spacing w:after="160" w:line="259" w:lineRule="auto"/></w:pPr></w:pPrDefault>'
        '</w:docDefaults>',
        '<w:style w:type="paragraph" w:default="1" w:styleId="Normal"><w:name w:val="Normal"/><w:qFormat/>'
        f'<w:rPr><w:color w:val="{c.normal}"/></w:rPr></w:style>',
        '<w:style w:type="character" w:default="1" w:styleId="DefaultParagraphFont">'
        '<w:name w:val="Default Paragraph Font"/><w:uiPriority w:val="1"/><w:semiHidden/></w:style>',
        '<w:style w:type="table" w:default="1" w:styleId="TableNormal"><w:name w:val="Normal Table"/>'
        '<w:semiHidden/><w:tblPr><w:tblInd w:w="0" w:type="dxa"/><w:tblCellMar>'
        '<w:top w:w="0" w:type="dxa"/><w:left w:w="108" w:type="dxa"/>'
        '<w:bottom w:w="0" w:type="dxa"/><w:right w:w="108" w:type="dxa"/>'
        '</w:tblCellMar></w:tblPr></w:style>',
        _paragraph_style(
            "Title", "Title",
            '<w:spacing w:after="300"/><w:jc w:val="center"/>',
            f'<w:b/><w:color w:val="{c.title}"/><w:sz w:val="56"/><w:szCs w:val="56"/>',
            next_style="Normal"),
        _paragraph_style(
            "Subtitle", "Subtitle",
            '<w:spacing w:after="160"/><w:jc w:val="center"/>',
            f'<w:i/><w:color w:val="{c.subtitle}"/><w:sz w:val="28"/><w:szCs w:val="28"/>',
            next_style="Normal"),
        _heading(1, 32, c.heading1),
        _heading(2, 26, c.heading2),
        _heading(3, 24, c.heading3),
        _heading(4, 22, c.heading4, italic=True),
        _paragraph_style(
            "CodeBlock", "Code Block",
            f'<w:shd w:val="clear" w:color="auto" w:fill="{c.code_bg}"/>'
            '<w:spacing w:before="0" w:after="0" w:line="240" w:lineRule="auto"/>',
            f'<w:rFonts w:ascii="Consolas" w:hAnsi="Consolas" w:cs="Consolas"/>'
            f'<w:color w:val="{c.code_text}"/><w:sz w:val="20"/><w:szCs w:val="20"/>'),
        _paragraph_style(
            "Quote", "Quote",
            f'<w:pBdr><w:left w:val="single" w:sz="18" w:space="8" w:color="{c.quote}"/></w:pBdr>'
            '<w:spacing w:before="120" w:after="120"/><w:ind w:left="720" w:right="720"/>',
            f'<w:i/><w:iCs/><w:color w:val="{c.quote}"/>',
            next_style="Normal"),
        _paragraph_style(
            "ListBullet", "List Bullet",
            '<w:spacing w:after="60"/><w:ind w:left="720" w:hanging="360"/>'),
        _paragraph_style(
            "ListNumber", "List Number",
            '<w:spacing w:after="60"/><w:ind w:left="720" w:hanging="360"/>'),
        '<w:style w:type="table" w:styleId="TableGrid"><w:name w:val="Table Grid"/>'
        '<w:basedOn w:val="TableNormal"/><w:pPr><w:spacing w:after="0" w:line="240" w:lineRule="auto"/></w:pPr>'
        '<w:tblPr><w:tblBorders>'
        + "".join(f'<w:{side} w:val="single" w:sz="4" w:space="0" w:color="{c.table_border}"/>'
                  for side in ("top", "left", "bottom", "right", "insideH", "insideV"))
        + '</w:tblBorders></w:tblPr></w:style>',
        _paragraph_style(
            "TOCHeading", "TOC Heading",
            '<w:keepNext/><w:spacing w:before="240" w:after="120"/><w:outlineLvl w:val="9"/>',
            f'<w:b/><w:color w:val="{c.heading1}"/><w:sz w:val="28"/><w:szCs w:val="28"/>',
            next_style="Normal"),
    ]
    for level in range(1, 5):
        styles.append(_paragraph_style(
            f"TOC{level}", f"toc {level}",
            f'<w:spacing w:after="60"/><w:ind w:left="{(level - 1) * 220}"/>',
            "<w:b/>" if level == 1 else "",
            next_style="Normal"))
    styles.append(_paragraph_style(
        "Footer", "footer",
        '<w:tabs><w:tab w:val="center" w:pos="4680"/><w:tab w:val="right" w:pos="9360"/></w:tabs>'
        '<w:spacing w:after="0" w:line="240" w:lineRule="auto"/><w:jc w:val="center"/>',
        f'<w:color w:val="{c.date}"/><w:sz w:val="18"/><w:szCs w:val="18"/>'))
    xml = f'{XML_HEAD}<w:styles {W_DECL}>{"".join(styles)}</w:styles>'
    return xml.encode("utf-8")


# --- fixed parts ----------------------------------------------------------

def font_table_xml() -> bytes:
    fonts = [
        ("Calibri", "swiss", "variable"),
        ("Cambria Math", "roman", "variable"),
        ("Consolas", "modern", "fixed"),
    ]
    body = "".join(
        f'<w:font w:name="{name}"><w:charset w:val="00"/><w:family w:val="{family}"/>'
        f'<w:pitch w:val="{pitch}"/></w:font>'
        for name, family, pitch in fonts
    )
    return f"{XML_HEAD}<w:fonts {W_DECL}>{body}</w:fonts>".encode("utf-8")


def settings_xml() -> bytes:
    return (
        f'{XML_HEAD}<w:settings {W_DECL}>'
        '<w:zoom w:percent="100"/>'
        '<w:defaultTabStop w:val="720"/>'
        '<w:characterSpacingControl w:val="doNotCompress"/>'
        '<w:compat><w:compatSetting w:name="compatibilityMode" '
        'w:uri="http://schemas.microsoft.com/office/word" w:val="15"/></w:compat>'
        '</w:settings>'
    ).encode("utf-8")


def footer_xml() -> bytes:
    """Footer with a centered page number field."""
    return (
        f'{XML_HEAD}<w:ftr {W_DECL} {R_DECL}>'
        '<w:p><w:pPr><w:pStyle w:val="Footer"/><w:jc w:val="center"/></w:pPr>'
        '<w:fldSimple w:instr=" PAGE \\* MERGEFORMAT "><w:r><w:t>1</w:t></w:r></w:fldSimple>'
        '</w:p></w:ftr>'
    ).encode("utf-8")


def _w3cdtf(moment):
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def core_properties_xml(title, author, created=None) -> bytes:
    created = created or datetime.now(timezone.utc)
    stamp = _w3cdtf(created)
    return (
        f'{XML_HEAD}<cp:coreProperties '
        'xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:dcterms="http://purl.org/dc/terms/" '
        'xmlns:dcmitype="http://purl.org/dc/dcmitype/" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
        f'<dc:title>{escape(title)}</dc:title>'
        f'<dc:creator>{escape(author)}</dc:creator>'
        f'<cp:lastModifiedBy>{escape(author)}</cp:lastModifiedBy>'
        f'<dcterms:created xsi:type="dcterms:W3CDTF">{stamp}</dcterms:created>'
        f'<dcterms:modified xsi:type="dcterms:W3CDTF">{stamp}</dcterms:modified>'
        '</cp:coreProperties>'
    ).encode("utf-8")


def app_properties_xml() -> bytes:
    return (
        f'{XML_HEAD}<Properties '
        'xmlns="http://schemas.openxmlformats.org/officeDocument/2006/extended-properties" '
        'xmlns:vt="http://schemas.openxmlformats.org/officeDocument/2006/docPropsVTypes">'
        '<Application>aimath2doc</Application><DocSecurity>0</DocSecurity>'
        '</Properties>'
    ).encode("utf-8")


def content_types_xml(has_media, page_numbers=False) -> bytes:
    defaults = [
        ("rels", CT.OPC_RELATIONSHIPS),
        ("xml", CT.XML),
    ]
    if has_media:
        defaults.append(("svg", SVG_CONTENT_TYPE))
    overrides = [
        ("/word/document.xml", CT.WML_DOCUMENT_MAIN),
        ("/word/styles.xml", CT.WML_STYLES),
        ("/word/fontTable.xml", CT.WML_FONT_TABLE),
        ("/word/settings.xml", CT.WML_SETTINGS),
    ]
    if page_numbers:
        overrides.append((f"/word/{FOOTER_PART}", CT.WML_FOOTER))
    overrides += [
        ("/docProps/core.xml", CT.OPC_CORE_PROPERTIES),
        ("/docProps/app.xml", CT.OFC_EXTENDED_PROPERTIES),
    ]
    body = "".join(f'<Default Extension="{ext}" ContentType="{ct}"/>' for ext, ct in defaults)
    body += "".join(f'<Override PartName="{name}" ContentType="{ct}"/>' for name, ct in overrides)
    return (f'{XML_HEAD}<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            f'{body}</Types>').encode("utf-8")


def _relationships(rels) -> bytes:
    body = "".join(f'<Relationship Id="{rel_id}" Type="{rel_type}" Target="{target}"/>'
                   for rel_id, rel_type, target in rels)
    return (f'{XML_HEAD}<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            f'{body}</Relationships>').encode("utf-8")


def package_relationships_xml() -> bytes:
    return _relationships([
        ("rId1", RT.OFFICE_DOCUMENT, "word/document.xml"),
        ("rId2", RT.CORE_PROPERTIES, "docProps/core.xml"),
        ("rId3", RT.EXTENDED_PROPERTIES, "docProps/app.xml"),
    ])


def document_relationships(media, page_numbers=False):
    """Fixed relationships followed by one image relationship per media item.

    Raises ``ValueError`` when the media list was numbered against a
    different relationship offset than this package uses.
    """
    rels = fixed_relationships(page_numbers)
    offset = len(rels)
    for i, image in enumerate(media, 1):
        rel_id = f"rId{offset + i}"
        if image.rel_id != rel_id:
            raise ValueError(f"Equation image {image.target} references {image.rel_id}, expected {rel_id}")
        rels.append((rel_id, RT.IMAGE, image.target))
    return rels


def assemble(document_xml: bytes, theme=Theme.COLOR, media=(), *, title: str = DEFAULT_TITLE,
             author: str = "", page_numbers: bool = False,
             compression: Compression = Compression.STORED, created=None) -> bytes:
    """Zip the document, its fixed parts and the equation images into a .docx.

    Parts are stored uncompressed unless ``compression`` asks for deflate.
    """
    media = list(media)
    compression = Compression(compression)
    parts = [
        ("[Content_Types].xml", content_types_xml(bool(media), page_numbers)),
        ("_rels/.rels", package_relationships_xml()),
        ("docProps/core.xml", core_properties_xml(title, author, created)),
        ("docProps/app.xml", app_properties_xml()),
        ("word/_rels/document.xml.rels", _relationships(document_relationships(media, page_numbers))),
        ("word/document.xml", document_xml),
        ("word/styles.xml", styles_xml(theme)),
        ("word/fontTable.xml", font_table_xml()),
        ("word/settings.xml", settings_xml()),
    ]
    if page_numbers:
        parts.append((f"word/{FOOTER_PART}", footer_xml()))
    parts += [(f"word/{image.target}", image.svg) for image in media]

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression.zip_mode) as zf:
        for name, data in parts:
            info = zipfile.ZipInfo(name, date_time=ZIP_DATE_TIME)
            info.compress_type = compression.zip_mode
            zf.writestr(info, data)
    logger.debug(f"Assembled package with {len(parts)} parts ({len(media)} images), {compression.value}")
    return buf.getvalue()
