"""
Colour palette and overlay helpers for rendering demo results.
"""

from typing import Dict, Iterable, Tuple

import cv2
import numpy as np

Color = Tuple[int, int, int]

# Cityscapes label colours, BGR
CITYSCAPES_COLORS = (
    (128, 64, 128),
    (232, 35, 244),
    (70, 70, 70),
    (156, 102, 102),
    (153, 153, 190),
    (153, 153, 153),
    (30, 170, 250),
    (0, 220, 220),
    (35, 142, 107),
    (152, 251, 152),
    (180, 130, 70),
    (60, 20, 220),
    (0, 0, 255),
    (142, 0, 0),
    (70, 0, 0),
    (100, 60, 0),
    (90, 0, 0),
    (230, 0, 0),
    (32, 11, 119),
    (0, 74, 111),
    (81, 0, 81),
)

BOX_COLOR: Color = (0, 0, 1)
FACE_COLOR: Color = (0, 220, 0)
GAZE_COLOR: Color = (255, 0, 0)
TEXT_COLOR: Color = (0, 0, 255)


class ClassColorMap:
    """Assigns palette colours to class ids in order of first appearance."""

    def __init__(self, palette: Iterable[Color] = CITYSCAPES_COLORS):
        self.palette = tuple(palette)
        self._assigned: Dict[int, int] = {}

    def __getitem__(self, class_id: int) -> Color:
        index = self._assigned.setdefault(class_id, len(self._assigned))
        return self.palette[index % len(self.palette)]

    def __len__(self) -> int:
        return len(self._assigned)


def blend_mask(
    image: np.ndarray,
    box: Tuple[int, int, int, int],
    mask: np.ndarray,
    color: Color,
    threshold: float = 0.5,
    alpha: float = 0.7
) -> None:
    """
    Paint a soft mask over a box region of the image in place.

    The mask is resized to the box; pixels whose value exceeds threshold become
    alpha * color + (1 - alpha) * pixel, the rest are left unchanged.
    """
    x1, y1, x2, y2 = box
    width, height = x2 - x1, y2 - y1
    if width <= 0 or height <= 0:
        return

    resized = cv2.resize(mask.astype(np.float32), (width, height), interpolation=cv2.INTER_LINEAR)
    roi = image[y1:y2, x1:x2]
    fill = np.empty_like(roi)
    fill[:] = color
    blended = cv2.addWeighted(fill, alpha, roi, 1.0 - alpha, 0.0)
    selected = resized > threshold
    roi[selected] = blended[selected]


def draw_box(image: np.ndarray, box: Tuple[int, int, int, int], color: Color = BOX_COLOR, thickness: int = 1) -> None:
    x1, y1, x2, y2 = box
    cv2.rectangle(image, (int(x1), int(y1)), (int(x2), int(y2)), color, thickness)


def draw_arrow(
    image: np.ndarray,
    origin: Tuple[float, float],
    vector: Tuple[float, float],
    length: float,
    color: Color = GAZE_COLOR
) -> None:
    """Draw an arrow from origin along a unit screen-space vector (y up)."""
    start = (int(round(origin[0])), int(round(origin[1])))
    end = (int(round(origin[0] + vector[0] * length)), int(round(origin[1] - vector[1] * length)))
    cv2.arrowedLine(image, start, end, color, 2)


def put_text_lines(image: np.ndarray, lines: Iterable[str], origin: Tuple[int, int] = (10, 20), color: Color = TEXT_COLOR) -> None:
    x, y = origin
    for line in lines:
        cv2.putText(image, line, (x, y), cv2.FONT_HERSHEY_COMPLEX_SMALL, 0.8, color, 1)
        y += 18
