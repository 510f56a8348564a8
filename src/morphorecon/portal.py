# src/morphorecon/portal.py
from __future__ import annotations

# General imports (stdlib)
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

# Third-party imports
import pandas as pd

# Local imports
from .exceptions import ValidationError
from .structure import ROOT_PARENT, Code, StructureCode

if TYPE_CHECKING:
    from .topology import ReconstructionGraph


PORTAL_COLUMNS = [
    "sampleNumber",
    "parentNumber",
    "structureIdentifier",
    "x",
    "y",
    "z",
    "radius",
    "lengthToParent",
    "allenId",
]


@dataclass
class IndexedNode:
    """
    A stored reconstruction node prior to external numbering.

    Attributes:
        index (int): Unique within its collection; not necessarily sorted or contiguous.
        parent_index (int): -1, another node's index, or an index outside the collection.
    """
    index: int
    parent_index: int
    x: float
    y: float
    z: float
    radius: float
    length_to_parent: float = 0.0
    structure_identifier: Code = StructureCode.UNDEFINED
    allen_id: Optional[int] = None


@dataclass
class PortalNode:
    """A node in the external ("portal") representation."""
    sample_number: int
    parent_number: int
    structure_identifier: Code
    x: float
    y: float
    z: float
    radius: float
    length_to_parent: float
    allen_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampleNumber": self.sample_number,
            "parentNumber": self.parent_number,
            "structureIdentifier": int(self.structure_identifier),
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "radius": self.radius,
            "lengthToParent": self.length_to_parent,
            "allenId": self.allen_id,
        }

    def as_indexed(self) -> IndexedNode:
        return IndexedNode(
            index=self.sample_number,
            parent_index=self.parent_number,
            x=self.x,
            y=self.y,
            z=self.z,
            radius=self.radius,
            length_to_parent=self.length_to_parent,
            structure_identifier=self.structure_identifier,
            allen_id=self.allen_id,
        )


@dataclass(frozen=True)
class ChunkInfo:
    """Position of one page within a paginated node list."""
    total_count: int
    offset: int
    limit: int
    has_more: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "offset": self.offset,
            "limit": self.limit,
            "hasMore": self.has_more,
        }


def _portal_node(node: IndexedNode, sample_number: int, parent_number: int, structure_identifier: Optional[Code]) -> PortalNode:
    return PortalNode(
        sample_number=sample_number,
        parent_number=parent_number,
        structure_identifier=structure_identifier if structure_identifier is not None else node.structure_identifier,
        x=node.x,
        y=node.y,
        z=node.z,
        radius=node.radius,
        length_to_parent=node.length_to_parent,
        allen_id=node.allen_id,
    )


def map_nodes(nodes: Iterable[IndexedNode], structure_identifier: Optional[Code] = None) -> List[PortalNode]:
    """Map nodes to the portal shape, keeping their indices as sample numbers."""
    return [
        _portal_node(n, n.index, n.parent_index, structure_identifier)
        for n in nodes
    ]


def renumber(nodes: Iterable[IndexedNode], structure_identifier: Optional[Code] = None) -> List[PortalNode]:
    """
    Assign dense, sequential sample numbers to an arbitrary node collection.

    Use:
        Sort by original index and number the nodes 1..N in that order.
        Parent references that name a node of the collection are rewritten to
        that node's new number. Root references (-1) stay -1, and references
        that match no node pass through unchanged, since paginated inputs
        legitimately point at nodes outside the page. The input is not
        mutated.

    Args:
        nodes (Iterable[IndexedNode]): Nodes with unique `index` values.
        structure_identifier (Optional[Code]): When given, replaces every
            node's structure identifier.

    Returns:
        List[PortalNode]: New nodes in ascending original-index order.
    """
    ordered = sorted(nodes, key=lambda n: n.index)

    numbering = {n.index: number for number, n in enumerate(ordered, start=1)}

    return [
        _portal_node(
            n,
            numbering[n.index],
            n.parent_index if n.parent_index == ROOT_PARENT else numbering.get(n.parent_index, n.parent_index),
            structure_identifier,
        )
        for n in ordered
    ]


def paginate(nodes: List[PortalNode], offset: int = 0, limit: Optional[int] = None) -> Tuple[List[PortalNode], ChunkInfo]:
    """
    Slice one page out of a node list.

    Args:
        nodes (List[PortalNode]): Full node list, already in output order.
        offset (int): Index of the first node in the page.
        limit (Optional[int]): Page size; None means "everything from offset".

    Returns:
        Tuple[List[PortalNode], ChunkInfo]: The page and its position.

    Raises:
        ValidationError: If offset is negative or limit is not positive.
    """
    if offset < 0:
        raise ValidationError(f"Page offset must be non-negative, got {offset}")
    if limit is not None and limit < 1:
        raise ValidationError(f"Page limit must be positive, got {limit}")

    total = len(nodes)
    size = limit if limit is not None else total

    page = nodes[offset:offset + size]
    return page, ChunkInfo(
        total_count=total,
        offset=offset,
        limit=size,
        has_more=offset + size < total,
    )


def portal_frame(nodes: Iterable[PortalNode]) -> pd.DataFrame:
    """Tabulate portal nodes, one row per node, in portal column order."""
    return pd.DataFrame([n.to_dict() for n in nodes], columns=PORTAL_COLUMNS)


def reconstruction_document(
    axon: Optional["ReconstructionGraph"],
    dendrite: Optional["ReconstructionGraph"],
    comment: str = "",
    id_string: str = "",
    offset: int = 0,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Build a portal JSON container for one neuron.

    Use:
        Renumber each finalized structure independently and relabel its
        first node as soma, then optionally cut one page out of each. Chunk
        info is included only when a page limit is requested. The soma entry
        is the renumbered root of the first structure that has one.

    Args:
        axon (Optional[ReconstructionGraph]): Finalized axon graph, if any.
        dendrite (Optional[ReconstructionGraph]): Finalized dendrite graph, if any.
        comment (str): Document-level comment.
        id_string (str): Identifier of the neuron, e.g. the source file stem.
        offset (int): First node of the page, per structure.
        limit (Optional[int]): Page size per structure; None for no paging.

    Returns:
        Dict[str, Any]: `{"comment": ..., "neurons": [ {...} ]}`.
    """
    neuron: Dict[str, Any] = {"idString": id_string, "soma": None}

    for name, graph in (("axon", axon), ("dendrite", dendrite)):
        if graph is None:
            continue

        nodes = renumber(graph.as_indexed_nodes())
        if nodes:
            nodes[0].structure_identifier = StructureCode.SOMA

        # Soma is the renumbered root of the first structure that has one
        if neuron["soma"] is None:
            root = next((n for n in nodes if n.parent_number == ROOT_PARENT), None)
            if root is not None:
                neuron["soma"] = root.to_dict()

        page, info = paginate(nodes, offset, limit)
        neuron[name] = [n.to_dict() for n in page]
        if limit is not None:
            neuron[f"{name}ChunkInfo"] = info.to_dict()

    return {"comment": comment, "neurons": [neuron]}
