"""
Regenerate one page or the cover of a saved PictureBookAI story.

Usage:
    python scripts/revise_story.py \
        --story picturebook_story.yaml \
        --page 2 \
        --instruction "make the character smile more"
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from picturebook import GenerationClient, Story, StorySynthesisOrchestrator  # noqa: E402
from picturebook.common import PictureBookError  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Revise a single page or the cover of a story.")
    parser.add_argument("--story", required=True, help="Path to the story YAML.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--page", type=int, help="1-based page number to regenerate.")
    target.add_argument("--cover", action="store_true", help="Regenerate the title and cover.")
    parser.add_argument("--instruction", required=True, help="Revision instruction for the AI.")
    parser.add_argument(
        "--output",
        default=None,
        help="Where to write the revised story YAML (default: overwrite --story).",
    )
    parser.add_argument("--text-model", default=None, help="Override the LiteLLM text model.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    story_path = Path(args.story)
    story = Story.from_yaml(story_path)
    orchestrator = StorySynthesisOrchestrator(client=GenerationClient(text_model=args.text_model))

    try:
        if args.cover:
            revised = orchestrator.regenerate_cover(story, args.instruction)
        else:
            revised = orchestrator.regenerate_page(story, args.page - 1, args.instruction)
    except PictureBookError as exc:
        print(f"Revision failed; the story was left unchanged: {exc.user_message}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else story_path
    output_path.write_text(revised.to_yaml(), encoding="utf-8")
    print(f"Saved revised story to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
