"""
Off-screen rasterisation of export pages with Pillow.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Protocol, Sequence

from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps

from .layout import ExportPage, ExportPageKind

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

DEFAULT_PAGE_SIZE = (800, 600)
DEFAULT_CAPTURE_SCALE = 2

Color = tuple[int, int, int]


@dataclass(frozen=True)
class RasterImage:
    """A captured page: PNG bytes plus its pixel size."""

    data: bytes
    width: int
    height: int


class PageRenderer(Protocol):
    def render(self, page: ExportPage) -> RasterImage: ...


@dataclass(frozen=True)
class PageLayoutConfig:
    text_panel: Color
    text_color: Color
    title_color: Color
    shadow_color: Color
    overlay_opacity: float
    afterword_panel_opacity: float


DEFAULT_LAYOUT = PageLayoutConfig(
    text_panel=(238, 242, 255),
    text_color=(51, 65, 85),
    title_color=(255, 255, 255),
    shadow_color=(30, 27, 46),
    overlay_opacity=0.3,
    afterword_panel_opacity=0.3,
)

_FONT_CANDIDATES = [
    "NotoSansCJK-Regular.ttc",
    "NotoSansCJKjp-Regular.otf",
    "NotoSansJP-Regular.ttf",
    "NotoSansJP-Regular.otf",
    "ipaexg.ttf",
    "ipag.ttf",
    "HiraginoSans-W3.ttc",
    "ヒラギノ角ゴシック W3.ttc",
    "YuGothM.ttc",
    "msgothic.ttc",
    "DejaVuSans.ttf",
    "Arial.ttf",
]

_FONT_SEARCH_ROOTS = [
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path.home() / ".fonts",
    Path("/Library/Fonts"),
    Path("/System/Library/Fonts"),
    Path.home() / "Library" / "Fonts",
    Path("C:/Windows/Fonts"),
]


class PillowPageRenderer:
    """
    Render export pages at a fixed geometry without touching any on-screen surface.

    Parameters
    ----------
    page_size:
        Logical page size; the raster is ``page_size * scale`` pixels.
    scale:
        Capture scale factor (2 gives crisp text when the page is placed at 800 × 600).
    font_path:
        Optional TrueType/OpenType font. When omitted, common system locations are
        searched (CJK-capable fonts first) before falling back to Pillow's default.
    """

    def __init__(
        self,
        *,
        page_size: tuple[int, int] = DEFAULT_PAGE_SIZE,
        scale: int = DEFAULT_CAPTURE_SCALE,
        layout: PageLayoutConfig = DEFAULT_LAYOUT,
        font_path: str | Path | None = None,
    ) -> None:
        self.page_size = page_size
        self.scale = max(1, scale)
        self.layout = layout
        self.font_path = Path(font_path) if font_path else _discover_font(_FONT_CANDIDATES, _FONT_SEARCH_ROOTS)

    @property
    def pixel_size(self) -> tuple[int, int]:
        width, height = self.page_size
        return width * self.scale, height * self.scale

    def render(self, page: ExportPage) -> RasterImage:
        if not page.image_bytes:
            raise ValueError(f"No image data resolved for {page.label}.")

        with Image.open(BytesIO(page.image_bytes)) as source:
            illustration = source.convert("RGB")

        if page.kind is ExportPageKind.COVER:
            canvas = self._draw_cover(page, illustration)
        elif page.kind is ExportPageKind.AFTERWORD:
            canvas = self._draw_afterword(page, illustration)
        else:
            canvas = self._draw_story_page(page, illustration)

        buffer = BytesIO()
        canvas.convert("RGB").save(buffer, format="PNG")
        width, height = canvas.size
        return RasterImage(data=buffer.getvalue(), width=width, height=height)

    # ------------------------------------------------------------------ cover rendering

    def _draw_cover(self, page: ExportPage, illustration: Image.Image) -> Image.Image:
        canvas = self._background(illustration, blur=False)
        draw = ImageDraw.Draw(canvas)
        width, height = canvas.size
        font = self._font(48)
        lines = _wrap_text(draw, page.title, font, width - self._px(64))
        self._draw_centered_block(
            draw, lines, font, (0, 0, width, height), self.layout.title_color, shadow=True
        )
        return canvas

    # ------------------------------------------------------------------ story pages

    def _draw_story_page(self, page: ExportPage, illustration: Image.Image) -> Image.Image:
        width, height = self.pixel_size
        half = width // 2
        canvas = Image.new("RGBA", (width, height), self.layout.text_panel + (255,))
        canvas.paste(ImageOps.fit(illustration, (half, height), Image.Resampling.LANCZOS), (0, 0))

        draw = ImageDraw.Draw(canvas)
        padding = self._px(24)
        box = (half + padding, padding, width - padding, height - padding)
        font, lines = self._fit_text(draw, page.text, box, start_size=20, min_size=12)
        self._draw_centered_block(draw, lines, font, box, self.layout.text_color)
        return canvas

    # ------------------------------------------------------------------ afterword

    def _draw_afterword(self, page: ExportPage, illustration: Image.Image) -> Image.Image:
        canvas = self._background(illustration, blur=True)
        draw = ImageDraw.Draw(canvas)
        width, height = canvas.size

        heading_font = self._font(48)
        heading_box = (0, self._px(48), width, self._px(140))
        self._draw_centered_block(
            draw, [page.title], heading_font, heading_box, self.layout.title_color, shadow=True
        )

        panel = (self._px(80), self._px(170), width - self._px(80), height - self._px(60))
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(overlay).rounded_rectangle(
            panel,
            radius=self._px(12),
            fill=(0, 0, 0, int(255 * self.layout.afterword_panel_opacity)),
        )
        canvas = Image.alpha_composite(canvas, overlay)
        draw = ImageDraw.Draw(canvas)

        padding = self._px(16)
        text_box = (panel[0] + padding, panel[1] + padding, panel[2] - padding, panel[3] - padding)
        font, lines = self._fit_text(draw, page.text, text_box, start_size=24, min_size=12)
        self._draw_centered_block(draw, lines, font, text_box, self.layout.title_color)
        return canvas

    # ------------------------------------------------------------------ helpers

    def _background(self, illustration: Image.Image, *, blur: bool) -> Image.Image:
        size = self.pixel_size
        background = ImageOps.fit(illustration, size, Image.Resampling.LANCZOS)
        if blur:
            background = background.filter(ImageFilter.GaussianBlur(radius=self._px(4)))
        canvas = background.convert("RGBA")
        overlay = Image.new("RGBA", size, (0, 0, 0, int(255 * self.layout.overlay_opacity)))
        return Image.alpha_composite(canvas, overlay)

    def _px(self, value: float) -> int:
        return int(value * self.scale)

    def _font(self, size: int) -> FontType:
        pixel_size = self._px(size)
        if self.font_path is not None:
            try:
                return ImageFont.truetype(str(self.font_path), pixel_size)
            except OSError:
                self.font_path = None
        return ImageFont.load_default(size=pixel_size)

    def _fit_text(
        self,
        draw: ImageDraw.ImageDraw,
        text: str,
        box: tuple[int, int, int, int],
        *,
        start_size: int,
        min_size: int,
    ) -> tuple[FontType, list[str]]:
        max_width = box[2] - box[0]
        max_height = box[3] - box[1]
        size = start_size
        while True:
            font = self._font(size)
            lines = _wrap_text(draw, text, font, max_width)
            if len(lines) * _line_height(font) <= max_height or size <= min_size:
                return font, lines
            size -= 2

    def _draw_centered_block(
        self,
        draw: ImageDraw.ImageDraw,
        lines: Sequence[str],
        font: FontType,
        box: tuple[int, int, int, int],
        color: Color,
        *,
        shadow: bool = False,
    ) -> None:
        left, top, right, bottom = box
        line_height = _line_height(font)
        y = top + ((bottom - top) - line_height * len(lines)) / 2
        offset = max(1, self._px(2))
        for line in lines:
            line_width = draw.textlength(line, font=font)
            x = left + ((right - left) - line_width) / 2
            if shadow:
                draw.text((x + offset, y + offset), line, font=font, fill=self.layout.shadow_color)
            draw.text((x, y), line, font=font, fill=color)
            y += line_height


def _line_height(font: FontType) -> int:
    return int(getattr(font, "size", 16) * 1.6)


def _wrap_text(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: FontType,
    max_width: float,
) -> list[str]:
    """
    Greedy wrap that works for both spaced and unspaced (Japanese) text.
    """
    lines: list[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        current = ""
        for char in paragraph:
            candidate = current + char
            if current and draw.textlength(candidate, font=font) > max_width:
                break_at = current.rfind(" ")
                if break_at > 0 and char != " ":
                    lines.append(current[:break_at])
                    current = current[break_at + 1 :] + char
                else:
                    lines.append(current.rstrip())
                    current = char.lstrip()
            else:
                current = candidate
        lines.append(current)
    return lines


def _discover_font(candidates: Sequence[str], search_roots: Sequence[Path]) -> Path | None:
    for candidate in candidates:
        for root in search_roots:
            direct = root / candidate
            if direct.exists():
                return direct
            if root.is_dir():
                match = next(root.rglob(candidate), None)
                if match is not None:
                    return match
    return None
