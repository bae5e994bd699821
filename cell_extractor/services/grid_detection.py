"""Grid detection - locates the content region and the 3x3 dividers of a composite.

The composite is expected to hold nine sub-images separated by light gutters.
Detection works on the brightness plane only:

1. Strip the outer near-white margin by scanning inward from each edge.
2. Average brightness per column and per row over the content region.
3. Collect bright runs in each profile as gutter candidates.
4. Pick the best two dividers per axis, falling back to equal thirds.
5. Turn the dividers into three ranges per axis.
"""

import logging
import math

import numpy as np

from cell_extractor.core.settings.app_settings import ExtractionSettings
from cell_extractor.enums import Edge
from cell_extractor.models import (
    AxisDividers,
    CellBoundary,
    ContentRegion,
    GridLayout,
    LineRegion,
    RasterBuffer,
)

logger = logging.getLogger(__name__)

GRID_SIZE = 3


def _edge_lines(brightness: np.ndarray, edge: Edge) -> np.ndarray:
    """
    View the brightness plane as lines ordered inward from an edge.

    Args:
        brightness (np.ndarray): Brightness plane, shape (height, width).
        edge (Edge): Edge to scan from.

    Returns:
        np.ndarray: Array whose row i is the i-th line in from the edge.
    """
    lines = brightness.T if edge.is_vertical else brightness
    return lines[::-1] if edge.from_end else lines


def _is_border_line(line: np.ndarray, threshold: float, min_ratio: float, step: int) -> bool:
    """
    Check whether a sampled line is predominantly near-white.

    Args:
        line (np.ndarray): 1-D brightness values along the line.
        threshold (float): Brightness a sample must exceed to count as white.
        min_ratio (float): Required fraction of white samples.
        step (int): Sampling stride.

    Returns:
        bool: True if the line counts as border.
    """
    samples = line[::step]
    white = int(np.count_nonzero(samples > threshold))
    return white >= min_ratio * samples.size


def detect_border(brightness: np.ndarray, edge: Edge, settings: ExtractionSettings) -> int:
    """
    Measure the near-white margin on one edge.

    The scan advances while lines qualify as border. A failing line only stops
    the scan if the next few lines fail too, so a thin anti-aliased seam between
    margin and content does not end the margin early.

    Args:
        brightness (np.ndarray): Brightness plane, shape (height, width).
        edge (Edge): Edge to scan from.
        settings (ExtractionSettings): Detection thresholds.

    Returns:
        int: Margin depth in pixels (0 if there is none).
    """
    lines = _edge_lines(brightness=brightness, edge=edge)
    max_scan = int(lines.shape[0] * settings.border_max_scan_ratio)

    border = 0
    for depth in range(max_scan):
        if _is_border_line(
            line=lines[depth],
            threshold=settings.border_threshold,
            min_ratio=settings.border_min_ratio,
            step=settings.border_sample_step,
        ):
            border = depth + 1
            continue

        last_probe = min(depth + settings.border_lookahead, max_scan - 1)
        resumes = any(
            _is_border_line(
                line=lines[probe],
                threshold=settings.border_threshold,
                min_ratio=settings.border_min_ratio,
                step=settings.border_lookahead_step,
            )
            for probe in range(depth + 1, last_probe + 1)
        )
        if not resumes:
            break

    return border


def detect_content_region(brightness: np.ndarray, settings: ExtractionSettings) -> ContentRegion:
    """
    Find the interior rectangle of a composite after removing its outer margin.

    Args:
        brightness (np.ndarray): Brightness plane, shape (height, width).
        settings (ExtractionSettings): Detection thresholds.

    Returns:
        ContentRegion: Content rectangle in image coordinates.
    """
    height, width = brightness.shape[:2]
    borders = {
        edge: detect_border(brightness=brightness, edge=edge, settings=settings) for edge in Edge
    }

    left = borders[Edge.LEFT]
    right = width - borders[Edge.RIGHT]
    top = borders[Edge.TOP]
    bottom = height - borders[Edge.BOTTOM]

    # Opposing margins can only meet when the scan ratio exceeds one half
    if right <= left:
        left, right = 0, width
    if bottom <= top:
        top, bottom = 0, height

    return ContentRegion(left=left, right=right, top=top, bottom=bottom)


def compute_profiles(
    brightness: np.ndarray,
    region: ContentRegion,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Average brightness per column and per row over the content region.

    Args:
        brightness (np.ndarray): Brightness plane, shape (height, width).
        region (ContentRegion): Region to average over.

    Returns:
        tuple[np.ndarray, np.ndarray]: (column averages, row averages).
    """
    content = brightness[region.top : region.bottom, region.left : region.right]
    col_avgs = content.mean(axis=0, dtype=np.float64)
    row_avgs = content.mean(axis=1, dtype=np.float64)
    return col_avgs, row_avgs


def find_line_regions(profile: np.ndarray, settings: ExtractionSettings) -> list[LineRegion]:
    """
    Collect bright runs of a profile as gutter candidates.

    Runs thinner than the minimum thickness, or within the edge guard of either
    end of the profile, are dropped: edge runs are leftover margin, not gutters.

    Args:
        profile (np.ndarray): 1-D brightness profile.
        settings (ExtractionSettings): Detection thresholds.

    Returns:
        list[LineRegion]: Candidates ordered by position.
    """
    length = profile.shape[0]
    mask = profile > settings.gutter_threshold
    padded = np.concatenate(([False], mask, [False])).astype(np.int8)
    changes = np.flatnonzero(np.diff(padded))

    lines: list[LineRegion] = []
    for start, end in zip(changes[0::2], changes[1::2]):
        thickness = int(end - start)
        if thickness < settings.min_line_thickness:
            continue
        if start <= settings.edge_guard or end >= length - settings.edge_guard:
            continue
        lines.append(
            LineRegion(
                start=int(start),
                end=int(end),
                avg_brightness=float(profile[start:end].mean()),
            )
        )
    return lines


def _score_pair(first: LineRegion, second: LineRegion, length: int) -> float:
    """
    Score a pair of candidates as the two dividers of an axis.

    Args:
        first (LineRegion): Candidate for the first divider.
        second (LineRegion): Candidate for the second divider.
        length (int): Axis length.

    Returns:
        float: Higher is better.
    """
    third = length / GRID_SIZE
    cell_sizes = (first.center, second.center - first.center, length - second.center)
    size_variance = sum(abs(size - third) for size in cell_sizes)
    position_score = -abs(first.center - third) - abs(second.center - 2 * third)
    line_quality = (first.thickness + second.thickness) * 0.5 + (
        first.avg_brightness + second.avg_brightness
    ) * 0.1
    return position_score - size_variance * 2 + line_quality


def select_dividers(lines: list[LineRegion], length: int) -> AxisDividers:
    """
    Choose the two dividers of an axis from its gutter candidates.

    Args:
        lines (list[LineRegion]): Candidates ordered by position.
        length (int): Axis length.

    Returns:
        AxisDividers: Chosen dividers. Geometric cuts have zero thickness.
    """
    ideal_first = length / GRID_SIZE
    ideal_second = 2 * length / GRID_SIZE

    if not lines:
        return AxisDividers(first=ideal_first, second=ideal_second)

    if len(lines) == 1:
        line = lines[0]
        if line.center < length / 2:
            return AxisDividers(
                first=line.center, second=ideal_second, first_thickness=line.thickness
            )
        return AxisDividers(
            first=ideal_first, second=line.center, second_thickness=line.thickness
        )

    ordered = sorted(lines, key=lambda line: line.center)
    best = (ordered[0], ordered[1])
    if len(ordered) > 2:
        best_score = -math.inf
        for i, first in enumerate(ordered):
            for second in ordered[i + 1 :]:
                score = _score_pair(first=first, second=second, length=length)
                if score > best_score:
                    best_score = score
                    best = (first, second)

    first, second = best
    return AxisDividers(
        first=first.center,
        second=second.center,
        first_thickness=first.thickness,
        second_thickness=second.thickness,
    )


def map_cell_boundaries(dividers: AxisDividers, length: int) -> list[CellBoundary]:
    """
    Convert the two dividers of an axis into three ranges.

    Each gutter's measured thickness is removed from the neighbouring cells.

    Args:
        dividers (AxisDividers): Chosen dividers.
        length (int): Axis length.

    Returns:
        list[CellBoundary]: Three ranges, clamped to [0, length].
    """
    half_first = dividers.first_thickness / 2
    half_second = dividers.second_thickness / 2
    raw = [
        (0, math.floor(dividers.first - half_first)),
        (math.ceil(dividers.first + half_first), math.floor(dividers.second - half_second)),
        (math.ceil(dividers.second + half_second), length),
    ]

    boundaries: list[CellBoundary] = []
    for start, end in raw:
        start = min(max(start, 0), length)
        end = min(max(end, start), length)
        boundaries.append(CellBoundary(start=start, end=end))
    return boundaries


def analyze_grid(raster: RasterBuffer, settings: ExtractionSettings) -> GridLayout:
    """
    Detect the 3x3 layout of a composite.

    Args:
        raster (RasterBuffer): Decoded composite.
        settings (ExtractionSettings): Detection thresholds.

    Returns:
        GridLayout: Content region, dividers and cell ranges.
    """
    content = detect_content_region(brightness=raster.brightness, settings=settings)
    logger.debug(
        f"Content region ({content.left}, {content.top}) - ({content.right}, {content.bottom})"
    )

    col_avgs, row_avgs = compute_profiles(brightness=raster.brightness, region=content)
    vertical_lines = find_line_regions(profile=col_avgs, settings=settings)
    horizontal_lines = find_line_regions(profile=row_avgs, settings=settings)
    logger.debug(
        f"Gutter candidates: {len(vertical_lines)} vertical, {len(horizontal_lines)} horizontal"
    )
    if not vertical_lines or not horizontal_lines:
        logger.info("No gutters found on at least one axis, using geometric thirds there")

    vertical = select_dividers(lines=vertical_lines, length=content.width)
    horizontal = select_dividers(lines=horizontal_lines, length=content.height)
    logger.debug(
        f"Dividers: x=({vertical.first:.1f}, {vertical.second:.1f}) "
        f"y=({horizontal.first:.1f}, {horizontal.second:.1f})"
    )

    return GridLayout(
        content=content,
        vertical=vertical,
        horizontal=horizontal,
        columns=map_cell_boundaries(dividers=vertical, length=content.width),
        rows=map_cell_boundaries(dividers=horizontal, length=content.height),
    )
