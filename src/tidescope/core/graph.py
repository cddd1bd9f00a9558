"""
Bounded-cost proximity graph between particles.

Only every ``stride``-th particle is considered, and only against the next
few sampled particles inside a ``window`` of indices, so the number of
distance checks grows with N / stride * window / stride instead of N².
"""

from dataclasses import dataclass

import numpy as np

LINE_COLOR = (0.2, 0.8, 1.0)


@dataclass
class ConnectionGraph:
    """Index pairs of nearby particles, ordered by (i, j)."""

    pairs: np.ndarray  # (M, 2) intp
    evaluated: int = 0  # candidate pairs whose distance was checked

    def __len__(self) -> int:
        return len(self.pairs)

    def segments(self, points: np.ndarray) -> np.ndarray:
        """
        Endpoint buffer for line drawing.

        Args:
            points: (N, 3) particle positions.

        Returns:
            (2M, 3) float32 array, two consecutive rows per segment.
        """
        if len(self.pairs) == 0:
            return np.zeros((0, 3), dtype=np.float32)
        return np.asarray(points, dtype=np.float32)[self.pairs.reshape(-1)]

    def segment_colors(self) -> np.ndarray:
        """(2M, 3) per-vertex colors for the segments."""
        return np.tile(np.asarray(LINE_COLOR, dtype=np.float32), (2 * len(self.pairs), 1))


def empty_graph() -> ConnectionGraph:
    return ConnectionGraph(pairs=np.zeros((0, 2), dtype=np.intp), evaluated=0)


def candidate_bound(count: int, stride: int = 10, window: int = 50) -> int:
    """Upper bound on the candidate pairs ``build_connections`` may check."""
    if count <= 0:
        return 0
    per_source = max(0, -(-window // stride) - 1)
    return -(-count // stride) * per_source


def build_connections(
    positions: np.ndarray,
    stride: int = 10,
    window: int = 50,
    max_distance: float = 15.0,
) -> ConnectionGraph:
    """
    Connect sampled particles that lie closer than ``max_distance``.

    ``i`` walks 0, stride, 2*stride, ...; for each, ``j`` walks
    i + stride, i + 2*stride, ... while j < min(i + window, N).

    Args:
        positions: Flat (3N,) or (N, 3) positions.
        stride: Index step for both endpoints.
        window: Index span searched after each ``i``.
        max_distance: Strict upper bound on connected distances.

    Returns:
        ConnectionGraph with pairs sorted by (i, j).
    """
    if stride <= 0:
        raise ValueError(f"stride must be positive, got {stride}")

    points = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    count = len(points)
    if count < stride:
        return empty_graph()

    sources = np.arange(0, count, stride)
    chunks = []
    evaluated = 0
    offset = stride
    while offset < window:
        targets = sources + offset
        valid = targets < np.minimum(sources + window, count)
        i = sources[valid]
        j = targets[valid]
        evaluated += len(i)
        if len(i):
            dist = np.linalg.norm(points[i] - points[j], axis=1)
            near = dist < max_distance
            chunks.append(np.column_stack((i[near], j[near])))
        offset += stride

    if not chunks:
        return ConnectionGraph(pairs=np.zeros((0, 2), dtype=np.intp), evaluated=evaluated)

    pairs = np.concatenate(chunks).astype(np.intp)
    order = np.lexsort((pairs[:, 1], pairs[:, 0]))
    return ConnectionGraph(pairs=pairs[order], evaluated=evaluated)
