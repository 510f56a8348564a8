# src/morphorecon/spatial.py
from __future__ import annotations

# General imports (stdlib)
import bisect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

# Third-party imports
import numpy as np


DIMENSION_NAMES = ("x", "y", "z")
NO_CHILD = -1


@dataclass(frozen=True)
class Point:
    """A 3-D location with opaque caller data carried through queries."""
    x: float
    y: float
    z: float
    id: Any = None


@dataclass(frozen=True)
class Neighbor:
    """Query result entry; distances are squared Euclidean distances."""
    point: Point
    squared_distance: float


def _coordinates(location: Any) -> Tuple[float, float, float]:
    """
    Extract (x, y, z) from a query location.

    Accepts a mapping with x/y/z keys, any object with x/y/z attributes
    (Point, RawNode, PortalNode, ...) or a 3-element sequence.
    """
    if isinstance(location, Mapping):
        return tuple(float(location[name]) for name in DIMENSION_NAMES)

    if all(hasattr(location, name) for name in DIMENSION_NAMES):
        return tuple(float(getattr(location, name)) for name in DIMENSION_NAMES)

    x, y, z = location
    return float(x), float(y), float(z)


class SpatialIndex:
    """
    Immutable 3-D k-d tree answering exact k-nearest-neighbour queries.

    The tree is stored as an arena: slot `i` holds one pivot point, the
    dimension it splits on, and the slots of its left/right subtrees
    (`NO_CHILD` when absent). Slot 0 is the root. Any change to the point set
    requires building a new index.
    """

    dimension_count = len(DIMENSION_NAMES)

    def __init__(self, points: Iterable[Point] = ()) -> None:
        """
        Build the tree from `points`.

        Use:
            At depth d the current subset is stably sorted on dimension
            d mod 3 (x, y, z, x, ...). The element at len // 2 becomes the
            pivot, the strict prefix forms the left subtree and the strict
            suffix the right subtree. Built iteratively, so arbitrarily large
            point sets do not touch the recursion limit.

        Args:
            points (Iterable[Point]): Points to index. May be empty.
        """
        self._points: List[Point] = list(points)
        n = len(self._points)

        coords = np.array(
            [_coordinates(p) for p in self._points], dtype=np.float64
        ).reshape(n, self.dimension_count)

        pivot = np.empty(n, dtype=np.intp)
        left = np.full(n, NO_CHILD, dtype=np.intp)
        right = np.full(n, NO_CHILD, dtype=np.intp)
        dims = np.zeros(n, dtype=np.intp)

        # (subset of point indices, depth, parent slot, child array to link into)
        stack: list[tuple[np.ndarray, int, int, Optional[np.ndarray]]] = []
        if n:
            stack.append((np.arange(n, dtype=np.intp), 0, NO_CHILD, None))

        slot = 0
        while stack:
            subset, depth, parent, link = stack.pop()
            dim = depth % self.dimension_count

            # Stable sort keeps input order among equal coordinates
            ordered = subset[np.argsort(coords[subset, dim], kind="stable")]
            middle = len(ordered) // 2

            pivot[slot] = ordered[middle]
            dims[slot] = dim
            if link is not None:
                link[parent] = slot

            if middle > 0:
                stack.append((ordered[:middle], depth + 1, slot, left))
            if middle + 1 < len(ordered):
                stack.append((ordered[middle + 1:], depth + 1, slot, right))

            slot += 1

        # Plain lists for the query loop; per-element numpy access is slow
        self._slot_points: List[Point] = [self._points[i] for i in pivot.tolist()]
        self._slot_coords: List[List[float]] = coords[pivot].tolist()
        self._dims: List[int] = dims.tolist()
        self._left: List[int] = left.tolist()
        self._right: List[int] = right.tolist()

    @classmethod
    def from_nodes(cls, nodes: Iterable[Any], id_attr: str = "sample_number") -> "SpatialIndex":
        """
        Build an index from reconstruction nodes.

        Args:
            nodes (Iterable[Any]): Objects exposing x, y, z (RawNode, PortalNode, ...).
            id_attr (str): Attribute copied into each Point's id.

        Returns:
            SpatialIndex: Index over the node positions.
        """
        return cls(
            Point(*_coordinates(n), id=getattr(n, id_attr, None))
            for n in nodes
        )

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> Tuple[Point, ...]:
        return tuple(self._points)

    def query(self, location: Any, k: int = 1) -> List[Neighbor]:
        """
        Return the `k` points closest to `location`, nearest first.

        Use:
            Branch-and-bound descent: the subtree on the query's side of each
            splitting plane is searched first, then the pivot is tested, then
            the far subtree only when fewer than k candidates are known or the
            squared distance to the plane beats the current k-th best. All
            comparisons stay in squared-distance space. Among equal distances
            the candidate found first is kept ahead.

        Args:
            location (Any): Point, object with x/y/z, mapping or 3-sequence.
            k (int): Maximum number of neighbours to return.

        Returns:
            List[Neighbor]: At most k entries in ascending squared distance;
                empty for an empty index or k < 1.
        """
        if not self._points or k < 1:
            return []

        closest: List[Neighbor] = []
        self._search(0, _coordinates(location), k, closest)
        return closest

    def nearest(self, location: Any) -> Optional[Neighbor]:
        """Closest point to `location`, or None for an empty index."""
        found = self.query(location, 1)
        return found[0] if found else None

    def _search(self, slot: int, target: Sequence[float], k: int, closest: List[Neighbor]) -> None:
        dim = self._dims[slot]
        pivot = self._slot_coords[slot]

        hyperplane_distance = target[dim] - pivot[dim]
        if hyperplane_distance < 0:
            inside, outside = self._left[slot], self._right[slot]
        else:
            inside, outside = self._right[slot], self._left[slot]

        if inside != NO_CHILD:
            self._search(inside, target, k, closest)

        distance = (
            (target[0] - pivot[0]) ** 2
            + (target[1] - pivot[1]) ** 2
            + (target[2] - pivot[2]) ** 2
        )

        if len(closest) < k or distance < closest[-1].squared_distance:
            bisect.insort_right(
                closest,
                Neighbor(self._slot_points[slot], distance),
                key=lambda c: c.squared_distance,
            )
            del closest[k:]

        if outside != NO_CHILD:
            if len(closest) < k or hyperplane_distance ** 2 < closest[-1].squared_distance:
                self._search(outside, target, k, closest)
