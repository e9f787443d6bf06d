import logging
import math
from typing import List, NamedTuple, Tuple

logger = logging.getLogger(__name__)

# Page profiles in points (Width x Height). First entry is the default.
PAGE_SIZES = {
    'carta': (612, 792),   # US Letter
    'oficio': (612, 936),  # Oficio / Folio
}
DEFAULT_PAPER_SIZE = 'carta'

VERTICAL = 'vertical'
HORIZONTAL = 'horizontal'
ORIENTATIONS = (VERTICAL, HORIZONTAL)


class GridError(ValueError):
    pass


class PageSize(NamedTuple):
    width: int
    height: int


class Panel(NamedTuple):
    row: int
    col: int
    index: int
    left: int
    top: int
    width: int
    height: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.left + self.width, self.top + self.height)


class GridPlan(NamedTuple):
    rows: int
    cols: int
    panel_width: int
    panel_height: int
    scale_factor: float
    panels: List[Panel]

    @property
    def canvas_width(self) -> int:
        return self.panel_width * self.cols

    @property
    def canvas_height(self) -> int:
        return self.panel_height * self.rows

    @property
    def canvas_size(self) -> Tuple[int, int]:
        return (self.canvas_width, self.canvas_height)

    @property
    def total_panels(self) -> int:
        return self.rows * self.cols


def resolve_orientation(value):
    if value in ORIENTATIONS:
        return value
    logger.warning("Unknown orientation %r, falling back to %s", value, VERTICAL)
    return VERTICAL


def resolve_paper_size(value):
    if value in PAGE_SIZES:
        return value
    logger.warning("Unknown paper size %r, falling back to %s", value, DEFAULT_PAPER_SIZE)
    return DEFAULT_PAPER_SIZE


def oriented_page_size(paper_size, orientation) -> PageSize:
    width, height = PAGE_SIZES[paper_size]
    if orientation == HORIZONTAL:
        return PageSize(height, width)
    return PageSize(width, height)


def validate_grid(rows, cols) -> Tuple[int, int]:
    """Coerce rows/cols to positive ints, raising GridError otherwise."""
    values = []
    for name, value in (('rows', rows), ('cols', cols)):
        if isinstance(value, str) and value.strip().isdecimal():
            value = int(value)
        # bool is an int subclass but never a grid count
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise GridError(f"{name} must be a positive integer")
        values.append(value)
    return values[0], values[1]


def scale_factor(natural_size, page_size, rows, cols) -> float:
    natural_w, natural_h = natural_size
    return max(1, min(natural_w / (page_size.width * cols),
                      natural_h / (page_size.height * rows)))


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def layout_panels(panel_width, panel_height, rows, cols) -> List[Panel]:
    panels = []
    for row in range(rows):
        for col in range(cols):
            panels.append(Panel(
                row=row,
                col=col,
                index=row * cols + col + 1,
                left=col * panel_width,
                top=row * panel_height,
                width=panel_width,
                height=panel_height,
            ))
    return panels


def plan_preview(paper_size, orientation, rows, cols) -> GridPlan:
    """Low-res plan: one point of paper maps to one pixel of canvas."""
    page = oriented_page_size(paper_size, orientation)
    return GridPlan(
        rows=rows,
        cols=cols,
        panel_width=page.width,
        panel_height=page.height,
        scale_factor=1,
        panels=layout_panels(page.width, page.height, rows, cols),
    )


def plan_export(paper_size, orientation, rows, cols, natural_size) -> GridPlan:
    """Full-resolution plan for slicing.

    Panels are scaled up from the page size so the canvas keeps the source
    resolution, but never drop below one pixel per point.
    """
    page = oriented_page_size(paper_size, orientation)
    factor = scale_factor(natural_size, page, rows, cols)
    panel_width = _round_half_up(page.width * factor)
    panel_height = _round_half_up(page.height * factor)
    return GridPlan(
        rows=rows,
        cols=cols,
        panel_width=panel_width,
        panel_height=panel_height,
        scale_factor=factor,
        panels=layout_panels(panel_width, panel_height, rows, cols),
    )
