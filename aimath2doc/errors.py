class Aimath2DocError(Exception):
    """Base class for every error raised by the conversion pipeline."""


class InputTooLargeError(Aimath2DocError):
    def __init__(self, size, limit):
        self.size = size
        self.limit = limit
        super().__init__(f"Content too large ({size} bytes). Maximum {limit} bytes allowed.")


class MarkdownConversionError(Aimath2DocError):
    pass


class MathRenderError(Aimath2DocError):
    """A single equation could not be rendered. Always recovered per equation."""

    def __init__(self, latex, reason):
        self.latex = latex
        self.reason = reason
        super().__init__(f"{reason} (in: {latex})")


class PdfExportError(Aimath2DocError):
    pass
