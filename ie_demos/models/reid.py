"""
Face gallery and cosine-distance re-identification.
"""

from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np

from ..utils.errors import InputError
from ..utils.images import parse_input_files, read_image
from ..utils.logging import get_logger

UNKNOWN_IDENTITY = "Unknown"


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """1 - cos(a, b); zero vectors are treated as maximally distant."""
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 1.0
    return 1.0 - float(np.dot(a, b)) / norm


class EmbeddingsGallery:
    """Known identities with one or more reference embeddings each."""

    def __init__(self, reid_model, threshold: float = 0.7):
        self.reid_model = reid_model
        self.threshold = threshold
        self.identities: List[str] = []
        self.embeddings: List[np.ndarray] = []
        self.logger = get_logger(__name__)

    def __len__(self) -> int:
        return len(self.embeddings)

    def add(self, identity: str, image: np.ndarray) -> None:
        self.identities.append(identity)
        self.embeddings.append(self.reid_model.compute_one(image))

    def load(self, paths: Sequence[str]) -> 'EmbeddingsGallery':
        """
        Add every readable image in paths; the file stem names the identity.

        Raises:
            InputError: If no gallery image could be read
        """
        files = parse_input_files(paths)
        images, names = [], []
        for path in files:
            image = read_image(path)
            if image is None:
                continue
            images.append(image)
            names.append(Path(path).stem)

        if not images:
            raise InputError("No valid gallery images were found", input_path=", ".join(paths))

        self.identities.extend(names)
        self.embeddings.extend(self.reid_model.compute(images))
        self.logger.info(f"Gallery holds {len(self.embeddings)} embeddings of {len(set(self.identities))} identities")
        return self

    def match(self, vectors: Sequence[np.ndarray]) -> List[Tuple[str, float]]:
        """
        Find the closest gallery identity for each vector.

        Returns:
            (identity, distance) per vector; identity is "Unknown" when the
            nearest distance is not below the threshold
        """
        matches = []
        for vector in vectors:
            if not self.embeddings:
                matches.append((UNKNOWN_IDENTITY, 1.0))
                continue
            distances = [cosine_distance(vector, reference) for reference in self.embeddings]
            best = int(np.argmin(distances))
            distance = distances[best]
            identity = self.identities[best] if distance < self.threshold else UNKNOWN_IDENTITY
            matches.append((identity, distance))
        return matches
