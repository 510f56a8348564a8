# src/morphorecon/topology.py
from __future__ import annotations

# General imports (stdlib)
import logging
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Tuple

# Third-party imports
import numpy as np
import pandas as pd

# Local imports
from .portal import IndexedNode
from .spatial import Point
from .structure import NodeCounts, RawNode, StructureCode

logger = logging.getLogger(__name__)

MICRONS_PER_MILLIMETER = 1000.0

SWC_COLUMNS = ["ID", "Type", "X", "Y", "Z", "Radius", "Parent", "LengthToParent", "AllenId"]


class ReconstructionGraph:
    """
    Parent-linked point set of one neuron structure (axon or dendrite).

    Samples are accumulated with `add_sample` and classified once by
    `finalize`. After finalization every node carries a terminal structure
    code (soma, path, fork or end point) and non-soma nodes whose parent is
    present carry their length to that parent in millimeters.

    `finalize` must see the complete sample set and must run exactly once;
    violating either corrupts the aggregate counts. This is not checked.
    """

    def __init__(self, path_code: Optional[StructureCode] = None) -> None:
        """
        Args:
            path_code (Optional[StructureCode]): Code given to nodes with
                exactly one child (AXON or BASAL_DENDRITE). None keeps each
                such node's declared code.
        """
        self._path_code = path_code

        self._nodes: Dict[int, RawNode] = {}
        self._child_count: Dict[int, int] = defaultdict(int)
        self._comments = ""
        self._soma: Optional[RawNode] = None

        self.offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)

        self._somas = 0
        self._paths = 0
        self._branches = 0
        self._ends = 0

    @property
    def path_code(self) -> Optional[StructureCode]:
        return self._path_code

    @property
    def comments(self) -> str:
        return self._comments

    @property
    def soma(self) -> Optional[RawNode]:
        return self._soma

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def counts(self) -> NodeCounts:
        return NodeCounts(
            total=len(self._nodes),
            soma=self._somas,
            path=self._paths,
            branch=self._branches,
            end=self._ends,
        )

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, sample_number: object) -> bool:
        return sample_number in self._nodes

    def __iter__(self) -> Iterator[RawNode]:
        return iter(self._nodes.values())

    def get(self, sample_number: int) -> Optional[RawNode]:
        return self._nodes.get(sample_number)

    def nodes(self) -> List[RawNode]:
        return list(self._nodes.values())

    def child_count(self, sample_number: int) -> int:
        return self._child_count.get(sample_number, 0)

    def add_comment(self, comment: str) -> None:
        self._comments += comment

    def add_sample(self, node: RawNode) -> None:
        """
        Insert or overwrite a sample, keyed by its sample number.

        The parent's child count is incremented whether or not the parent has
        been added yet.
        """
        if not node.is_root:
            self._child_count[node.parent_number] += 1

        if node.sample_number in self._nodes:
            logger.debug("Sample %d redefined; keeping the last definition", node.sample_number)

        self._nodes[node.sample_number] = node

    def finalize(self) -> None:
        """
        Classify every node and compute lengths to parents.

        Use:
            Roots (parent -1) and samples declared soma are soma. Other nodes
            are relabelled by child count: none → end point, one → the
            graph's path code, more → fork point. A non-soma node whose parent
            is in the graph gets its length to parent (µm distance / 1000)
            unless a non-zero length was supplied. Aggregate counters follow
            the final classification.
        """
        for node in self._nodes.values():
            if node.is_root or node.structure_code == StructureCode.SOMA:
                node.structure_code = StructureCode.SOMA
            else:
                node.structure_code = self._classify(node)

                if not node.length_to_parent:
                    parent = self._nodes.get(node.parent_number)
                    if parent is not None:
                        node.length_to_parent = self._length_between(node, parent)

            self._count(node)

    def _classify(self, node: RawNode):
        children = self._child_count.get(node.sample_number, 0)

        if children == 0:
            return StructureCode.END_POINT
        if children == 1:
            return self._path_code if self._path_code is not None else node.structure_code
        return StructureCode.FORK_POINT

    def _count(self, node: RawNode) -> None:
        code = node.structure_code

        if code == StructureCode.SOMA:
            if self._soma is not None:
                logger.warning(
                    "Additional soma sample %d replaces sample %d",
                    node.sample_number, self._soma.sample_number,
                )
            self._soma = node
            self._somas += 1
        elif code == StructureCode.FORK_POINT:
            self._branches += 1
        elif code == StructureCode.END_POINT:
            self._ends += 1
        else:
            self._paths += 1

    @staticmethod
    def _length_between(node: RawNode, parent: RawNode) -> float:
        # Input coordinates are µm; lengths are stored in mm
        delta = np.subtract(node.position, parent.position)
        return float(np.linalg.norm(delta)) / MICRONS_PER_MILLIMETER

    def as_indexed_nodes(self) -> List[IndexedNode]:
        """Nodes keyed by sample number, ready for renumbering."""
        return [
            IndexedNode(
                index=n.sample_number,
                parent_index=n.parent_number,
                x=n.x,
                y=n.y,
                z=n.z,
                radius=n.radius,
                length_to_parent=n.length_to_parent,
                structure_identifier=n.structure_code,
                allen_id=n.allen_id,
            )
            for n in self._nodes.values()
        ]

    def as_points(self) -> List[Point]:
        """Node positions for a SpatialIndex, with sample numbers as ids."""
        return [Point(n.x, n.y, n.z, id=n.sample_number) for n in self._nodes.values()]

    def to_dataframe(self) -> pd.DataFrame:
        """
        Tabulate the graph in SWC column order.

        Returns:
            pd.DataFrame: One row per node with columns
                ID, Type, X, Y, Z, Radius, Parent, LengthToParent, AllenId.
        """
        df = pd.DataFrame(
            [
                (
                    n.sample_number,
                    int(n.structure_code),
                    n.x,
                    n.y,
                    n.z,
                    n.radius,
                    n.parent_number,
                    n.length_to_parent,
                    n.allen_id,
                )
                for n in self._nodes.values()
            ],
            columns=SWC_COLUMNS,
        )

        # Integer-like columns stay int64 even for an empty graph
        for col in ("ID", "Type", "Parent"):
            df[col] = df[col].astype("int64")

        return df
