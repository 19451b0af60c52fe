"""
CLI example to run the complete PictureBookAI pipeline end-to-end.

Usage:
    python scripts/run_full_pipeline.py \
        --idea "a cat named Sora visits the moon" \
        --theme adventure \
        --style watercolor \
        --pages 4 \
        --output sora_story.yaml \
        --pdf sora_story.pdf
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from picturebook import (  # noqa: E402
    GenerationClient,
    StorySession,
    StorySynthesisOrchestrator,
)
from picturebook.common import PictureBookError  # noqa: E402
from picturebook.story_generation import (  # noqa: E402
    PERMITTED_PAGE_COUNTS,
    ArtStyle,
    GenerationRequest,
    ReferenceImage,
    Theme,
)


class ProgressTracker:
    """
    Provides user-friendly command-line progress updates for the PictureBookAI pipeline.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "text:generating":
                self._write("[1/4] 物語のあらすじを考えています...")
            case "text:generated":
                title = payload.get("title", "")
                total = payload.get("total_pages", 0)
                self._write(f"[1/4] 「{title}」 ({total} pages) drafted.")
            case "cover:generating":
                self._write("[2/4] 表紙のイラストを生成中...")
            case "pages:generating":
                total = payload.get("total_pages", 0)
                policy = payload.get("policy", "sequential")
                self._write(f"[3/4] Illustrating {total} pages ({policy})...")
                self._page_bar = tqdm(total=total, desc="Illustrated pages", unit="page")
            case "page:generating":
                if self._page_bar is not None:
                    page_number = payload.get("page_number")
                    self._page_bar.set_description(f"{page_number}ページ目のイラストを生成中")
            case "page:done":
                if self._page_bar is not None:
                    self._page_bar.update(1)
            case "pipeline:complete":
                self.close()
                self._write("[4/4] Pipeline complete.")
            case "pipeline:failed":
                self.close()
                stage_name = payload.get("stage")
                self._write(f"Pipeline failed during {stage_name}: {payload.get('error')}")

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full PictureBookAI generation pipeline.")
    parser.add_argument("--idea", required=True, help="Short story idea.")
    parser.add_argument(
        "--theme",
        required=True,
        help=f"Story theme ({', '.join(member.name.lower() for member in Theme)}).",
    )
    parser.add_argument(
        "--style",
        required=True,
        help=f"Art style ({', '.join(member.name.lower() for member in ArtStyle)}).",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=8,
        choices=PERMITTED_PAGE_COUNTS,
        help="Number of story pages (default: 8).",
    )
    parser.add_argument(
        "--reference-image",
        default=None,
        help="Optional path to a picture of the main character.",
    )
    parser.add_argument(
        "--output",
        default="picturebook_story.yaml",
        help="Output YAML file to store the generated story.",
    )
    parser.add_argument(
        "--pdf",
        default=None,
        help="Optional PDF path; when set the story is exported after generation.",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Request page illustrations concurrently (faster, no incremental progress).",
    )
    parser.add_argument("--text-model", default=None, help="Override the LiteLLM text model.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        request = GenerationRequest(
            idea=args.idea,
            theme=Theme.parse(args.theme),
            art_style=ArtStyle.parse(args.style),
            page_count=args.pages,
            reference_image=(
                ReferenceImage.from_path(args.reference_image) if args.reference_image else None
            ),
        )
    except PictureBookError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2

    orchestrator = StorySynthesisOrchestrator(
        client=GenerationClient(text_model=args.text_model),
        image_policy="parallel" if args.parallel else None,
    )
    session = StorySession(orchestrator=orchestrator)
    tracker = ProgressTracker()

    try:
        story = session.generate(request, progress_callback=tracker)
    except PictureBookError as exc:
        print(f"Story generation failed: {exc.user_message}", file=sys.stderr)
        return 1
    finally:
        tracker.close()

    output_path = Path(args.output)
    output_path.write_text(story.to_yaml(), encoding="utf-8")
    print(f"Saved story to {output_path}")

    if args.pdf:
        try:
            report = session.export_pdf(args.pdf)
        except PictureBookError as exc:
            print(f"PDF export failed: {exc.user_message}", file=sys.stderr)
            return 1
        print(f"Rendered {report.page_count} PDF pages to {report.output_path}")
        for label in report.skipped:
            print(f"  skipped: {label}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
