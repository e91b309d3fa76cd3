import argparse
import logging
import os
import sys

from aimath2doc.config import ConvertOptions, EquationMode, Theme
from aimath2doc.converter import markdown_stats
from aimath2doc.errors import Aimath2DocError
from aimath2doc.export import FORMATS

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="aimath2doc",
        description="Convert Markdown with LaTeX math into DOCX, HTML or PDF.",
    )
    parser.add_argument("input", help="Markdown file to convert")
    parser.add_argument("output", nargs="?", default="output.docx",
                        help="output file; its extension selects the format (default: output.docx)")
    parser.add_argument("--format", choices=sorted(FORMATS), help="override the format implied by OUTPUT")
    parser.add_argument("--title")
    parser.add_argument("--author", default="")
    parser.add_argument("--date")
    parser.add_argument("--theme", choices=[t.value for t in Theme] + ["bw"], default=Theme.COLOR.value)
    parser.add_argument("--toc", action="store_true", help="include a table of contents")
    parser.add_argument("--page-numbers", action="store_true")
    parser.add_argument("--no-styles", action="store_true", help="HTML: omit the theme stylesheet")
    parser.add_argument("--equations", choices=[m.value for m in EquationMode], default=EquationMode.SVG.value,
                        help="DOCX: embed equations as SVG images or editable OMML")
    parser.add_argument("--deflate", action="store_true", help="DOCX: compress package parts")
    parser.add_argument("--html-input", action="store_true", help="INPUT is already converted HTML")
    parser.add_argument("--stats", action="store_true", help="print document statistics and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def output_format(args):
    if args.format:
        return args.format
    ext = os.path.splitext(args.output)[1].lower().lstrip(".")
    if ext not in FORMATS:
        raise ValueError(f"Cannot tell the output format from '{args.output}'; use --format")
    return ext


def options_from_args(args, input_file):
    options = {
        "title": args.title or os.path.splitext(os.path.basename(input_file))[0],
        "author": args.author,
        "theme": args.theme,
        "includeTableOfContents": args.toc,
        "includeStyles": not args.no_styles,
        "pageNumbers": args.page_numbers,
        "equationMode": args.equations,
        "compression": "deflated" if args.deflate else "stored",
        "isPreEditedHtml": args.html_input,
    }
    if args.date:
        options["date"] = args.date
    return ConvertOptions.coerce(options)


def convert_file(input_file, output_file, options, fmt="docx"):
    with open(input_file, "r", encoding="utf-8") as f:
        content = f.read()
    exporter = FORMATS[fmt][0]
    result = exporter(content, options)
    if isinstance(result, str):
        result = result.encode("utf-8")
    with open(output_file, "wb") as f:
        f.write(result)
    return len(result)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)

    if args.stats:
        try:
            with open(args.input, "r", encoding="utf-8") as f:
                stats = markdown_stats(f.read())
        except OSError as e:
            print(f"[Error] Could not open or read the file: '{args.input}': {e}", file=sys.stderr)
            return 1
        print(f"Words: {stats.words}\nCharacters: {stats.characters}\nLines: {stats.lines}\n"
              f"Paragraphs: {stats.paragraphs}\nHeadings: {stats.headings}\n"
              f"Reading time: {stats.reading_time} min")
        return 0

    try:
        fmt = output_format(args)
        options = options_from_args(args, args.input)
        convert_file(args.input, args.output, options, fmt)
    except OSError as e:
        print(f"[Error] Could not open or write the file: {e}", file=sys.stderr)
        return 1
    except (ValueError, Aimath2DocError) as e:
        print(f"[Error] {e}", file=sys.stderr)
        return 1
    print(f"Conversion complete.\nFile saved as: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
