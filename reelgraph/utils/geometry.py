"""Canvas geometry: sizes, rectangles and aspect-fit placement."""

from dataclasses import dataclass
from enum import Enum

WIDESCREEN_ASPECT = 16 / 9


class AspectFit(str, Enum):
    """How a visual clip is placed inside the canvas."""

    ORIGINAL = "original"
    SQUARE = "square"
    COVER = "cover"
    WIDESCREEN = "widescreen"


@dataclass(frozen=True)
class Size:
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def scaled(self, sx: float, sy: float) -> "Rect":
        return Rect(self.x * sx, self.y * sy, self.width * sx, self.height * sy)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def make_even(value: float) -> int:
    """Round to the nearest even integer (yuv420p needs even dimensions)."""
    return int(round(value / 2)) * 2


def _fit_aspect(aspect: float, canvas: Size, zoom: float) -> tuple[float, float]:
    # Fit by width first, then constrain by height
    width = canvas.width * zoom
    height = width / aspect
    if height > canvas.height * zoom:
        height = canvas.height * zoom
        width = height * aspect
    return width, height


def calculate_fit(
    original: Size | None,
    canvas: Size,
    aspect_fit: AspectFit = AspectFit.ORIGINAL,
    zoom: float = 1.0,
) -> Rect:
    """Placement of a clip on the canvas for a fit mode and zoom.

    The resulting rectangle is always centred; with zoom > 1 it extends past
    the canvas edges and is cropped by the compositor.

    Args:
        original: Intrinsic size of the source, or None when unknown
        canvas: Editing canvas size
        aspect_fit: Fit mode
        zoom: Scale factor applied on top of the fit

    Returns:
        Rect in canvas coordinates
    """
    aspect_fit = AspectFit(aspect_fit)
    if aspect_fit is AspectFit.COVER:
        width, height = canvas.width * zoom, canvas.height * zoom
    elif aspect_fit is AspectFit.SQUARE:
        width = height = min(canvas.width, canvas.height) * zoom
    elif aspect_fit is AspectFit.WIDESCREEN:
        width, height = _fit_aspect(WIDESCREEN_ASPECT, canvas, zoom)
    else:
        aspect = original.aspect if original and original.height else canvas.aspect
        width, height = _fit_aspect(aspect, canvas, zoom)

    return Rect(
        x=(canvas.width - width) / 2,
        y=(canvas.height - height) / 2,
        width=width,
        height=height,
    )
