import os
import zipfile
from datetime import date as _date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Requests above this size are rejected before they reach the pipeline.
MAX_INPUT_BYTES = int(os.environ.get("AIMATH2DOC_MAX_INPUT_BYTES", 1_000_000))

PDF_PAGE_TIMEOUT_MS = int(os.environ.get("AIMATH2DOC_PDF_TIMEOUT_MS", 30000))
PDF_LAUNCH_TIMEOUT_MS = PDF_PAGE_TIMEOUT_MS

DEFAULT_TITLE = "Document"


class Theme(str, Enum):
    COLOR = "color"
    BLACK_AND_WHITE = "blackAndWhite"


class EquationMode(str, Enum):
    """How equations are embedded in DOCX output."""

    SVG = "svg"
    OMML = "omml"


class Compression(str, Enum):
    # Stored parts are accepted by every OOXML consumer, including strict
    # validators that reject deflated [Content_Types].xml.
    STORED = "stored"
    DEFLATED = "deflated"

    @property
    def zip_mode(self):
        return zipfile.ZIP_STORED if self is Compression.STORED else zipfile.ZIP_DEFLATED


def _today():
    d = _date.today()
    return f"{d.month}/{d.day}/{d.year}"


class ConvertOptions(BaseModel):
    """Options bag shared by the HTML, DOCX and PDF exporters.

    Accepts both the snake_case field names and the camelCase keys used by
    web clients (``includeTableOfContents``, ``pageNumbers``, ...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = DEFAULT_TITLE
    author: str = ""
    date: str = Field(default_factory=_today)
    theme: Theme = Theme.COLOR
    include_table_of_contents: bool = Field(False, alias="includeTableOfContents")
    include_styles: bool = Field(True, alias="includeStyles")
    page_numbers: bool = Field(False, alias="pageNumbers")
    equation_mode: EquationMode = Field(EquationMode.SVG, alias="equationMode")
    compression: Compression = Compression.STORED
    is_pre_edited_html: bool = Field(False, alias="isPreEditedHtml")

    @field_validator("theme", mode="before")
    @classmethod
    def _theme_alias(cls, value):
        if isinstance(value, str) and value.lower() in ("bw", "blackandwhite", "black-and-white"):
            return Theme.BLACK_AND_WHITE
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _title_default(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_TITLE
        return value

    @classmethod
    def coerce(cls, options=None):
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(dict(options))
