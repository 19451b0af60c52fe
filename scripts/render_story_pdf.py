"""
Render a PictureBookAI story YAML into a PDF.

Usage:
    python scripts/render_story_pdf.py \
        --story picturebook_story.yaml \
        --output picturebook_story.pdf
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from picturebook import Story, StorybookPDFBuilder  # noqa: E402
from picturebook.common import PictureBookError  # noqa: E402
from picturebook.pdf_generation import PillowPageRenderer  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a PictureBookAI story YAML into a storybook PDF."
    )
    parser.add_argument(
        "--story",
        required=True,
        help="Path to the story YAML (output of run_full_pipeline.py).",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Destination PDF file path (default: '<title>.pdf').",
    )
    parser.add_argument(
        "--font",
        default=None,
        help="Optional TrueType/OpenType font with Japanese glyphs.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for downloading illustration assets (default: 30).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    story = Story.from_yaml(args.story)
    output = args.output or f"{story.title}.pdf"

    builder = StorybookPDFBuilder(
        renderer=PillowPageRenderer(font_path=args.font),
        request_timeout=args.timeout,
    )
    try:
        report = builder.build(story, output)
    except PictureBookError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1

    print(f"Rendered {report.page_count} storybook pages to {report.output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
