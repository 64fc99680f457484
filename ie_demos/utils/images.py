"""
Image and video input for the demos.

Handles input path discovery, image decoding, batch assembly and copying of
decoded BGR images into NCHW input tensors.
"""

from pathlib import Path
from typing import Iterator, List, Sequence, Tuple, Union

import cv2
import numpy as np

from .errors import InputError
from .logging import get_logger

logger = get_logger(__name__)


def parse_input_files(args: Sequence[str]) -> List[str]:
    """
    Expand input arguments into a list of files.

    A directory contributes the regular files directly inside it, sorted by
    name; an existing file contributes itself; anything else is skipped.
    """
    files: List[str] = []
    for arg in args:
        path = Path(arg)
        if path.is_dir():
            files.extend(str(p) for p in sorted(path.iterdir()) if p.is_file())
        elif path.is_file():
            files.append(str(path))
        else:
            logger.warning(f"{arg} cannot be opened")
    return files


def read_image(path: str):
    """Decode an image as BGR, or return None when it cannot be read."""
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        logger.warning(f"Image {path} cannot be read!")
    return image


def collect_batch(paths: Sequence[str], batch_size: int) -> Tuple[List[np.ndarray], List[str]]:
    """
    Fill a batch of images by cycling through the input paths.

    Args:
        paths: Candidate image files
        batch_size: Number of slots in the network batch

    Returns:
        Decoded images and the path each one came from

    Raises:
        InputError: If no paths were given or no image could be read
    """
    if not paths:
        raise InputError("No suitable images were found")

    if batch_size > len(paths):
        logger.warning("Network batch size is greater than number of images, some input files will be duplicated")
    elif batch_size < len(paths):
        logger.warning("Network batch size is less than number of images, some input files will be ignored")

    images: List[np.ndarray] = []
    sources: List[str] = []
    for slot in range(batch_size):
        path = paths[slot % len(paths)]
        image = read_image(path)
        if image is None:
            continue
        images.append(image)
        sources.append(path)

    if not images:
        raise InputError("Valid input images were not found!")
    return images, sources


FrameSource = Union[str, int, Sequence[str]]

VIDEO_SUFFIXES = {'.avi', '.mp4', '.mkv', '.mov', '.webm', '.m4v', '.mpg', '.mpeg'}


def iterate_frames(source: FrameSource, loop: bool = False) -> Iterator[np.ndarray]:
    """
    Yield BGR frames from images, a directory, a video file or a camera.

    Args:
        source: Image list, directory or image path, video path, or camera index
        loop: Restart from the first frame when the source is exhausted
    """
    if isinstance(source, (list, tuple)):
        yield from _iterate_images(parse_input_files(source), loop)
        return

    if isinstance(source, int) or (isinstance(source, str) and source.isdigit()):
        yield from _iterate_capture(int(source), loop=False)
        return

    path = Path(source)
    if path.is_dir():
        yield from _iterate_images(parse_input_files([str(path)]), loop)
    elif path.suffix.lower() in VIDEO_SUFFIXES:
        if not path.is_file():
            raise InputError(f"Can't open video {source}", input_path=str(source))
        yield from _iterate_capture(str(path), loop)
    elif path.is_file():
        yield from _iterate_images([str(path)], loop)
    else:
        raise InputError(f"Can't open input {source}", input_path=str(source))


def _iterate_images(files: List[str], loop: bool) -> Iterator[np.ndarray]:
    if not files:
        raise InputError("No suitable images were found")

    while True:
        produced = False
        for path in files:
            image = read_image(path)
            if image is not None:
                produced = True
                yield image
        if not loop or not produced:
            return


def _iterate_capture(source: Union[str, int], loop: bool) -> Iterator[np.ndarray]:
    capture = cv2.VideoCapture(source)
    if not capture.isOpened():
        raise InputError(f"Can't open video capture {source}", input_path=str(source))

    try:
        while True:
            ok, frame = capture.read()
            if not ok:
                if loop and capture.set(cv2.CAP_PROP_POS_FRAMES, 0):
                    ok, frame = capture.read()
                if not ok:
                    return
            yield frame
    finally:
        capture.release()


def image_to_tensor(image: np.ndarray, tensor: np.ndarray, batch_index: int = 0) -> None:
    """
    Copy an HWC BGR image into slot batch_index of an NCHW tensor.

    The image is resized to the tensor's spatial size when they differ.
    """
    _, channels, height, width = tensor.shape
    if image.shape[:2] != (height, width):
        image = cv2.resize(image, (width, height))
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    tensor[batch_index] = image[:, :, :channels].transpose(2, 0, 1)


def resize_to_network(image: np.ndarray, height: int, width: int) -> np.ndarray:
    """Return a 1xCxHxW uint8 blob for a single image."""
    blob = np.zeros((1, 3, height, width), dtype=np.uint8)
    image_to_tensor(image, blob, 0)
    return blob
