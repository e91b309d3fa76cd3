from bs4 import BeautifulSoup

from aimath2doc.config import Theme
from aimath2doc.html_export import download_filename, standalone_document, stylesheet


def test_download_filename():
    assert download_filename("My Doc: v2", "html") == "my-doc--v2.html"
    assert download_filename("", "docx") == "document.docx"


def test_standalone_document():
    out = standalone_document("<p>body</p>", title="A <b>", author="Ann", date="1/2/2024")
    soup = BeautifulSoup(out, "html.parser")
    assert out.startswith("<!DOCTYPE html>")
    assert soup.title.get_text() == "A <b>"
    assert soup.find("div", class_="document-author").get_text() == "By Ann"
    assert soup.find("div", class_="document-date").get_text() == "1/2/2024"
    assert soup.find("div", class_="document-content").p.get_text() == "body"
    assert soup.find("style") is not None
    assert soup.find("div", class_="document-footer") is None


def test_without_styles():
    out = standalone_document("<p>body</p>", include_styles=False)
    assert "<style>" not in out


def test_footer_and_toc():
    out = standalone_document("<p>x</p>", date="d", toc='<div class="table-of-contents"></div>\n', footer=True)
    soup = BeautifulSoup(out, "html.parser")
    assert soup.find("div", class_="document-footer").get_text() == "Generated by aimath2doc on d"
    toc = soup.find("div", class_="table-of-contents")
    assert toc.find_next_sibling("div")["class"] == ["document-content"]


def test_stylesheet_follows_theme():
    assert "#0f172a" in stylesheet(Theme.COLOR)
    assert "#0f172a" not in stylesheet(Theme.BLACK_AND_WHITE)
    assert stylesheet(Theme.COLOR) == stylesheet("color")


def test_color_theme_page_gradient():
    assert "background: linear-gradient(135deg, #0f172a 0%, #1e293b 100%);" in stylesheet(Theme.COLOR)
    assert "linear-gradient" not in stylesheet(Theme.BLACK_AND_WHITE)
