# src/morphorecon/structure.py
from __future__ import annotations

# General imports (stdlib)
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Optional, Union


ROOT_PARENT = -1
"""Parent number carried by root (soma) samples."""


class StructureCode(IntEnum):
    """SWC structure identifiers used by reconstructions."""

    UNDEFINED = 0
    SOMA = 1
    AXON = 2
    BASAL_DENDRITE = 3
    APICAL_DENDRITE = 4
    FORK_POINT = 5
    END_POINT = 6


Code = Union[StructureCode, int]
"""
Code:
    A structure code as read from input. Values outside the fixed enumeration
    are kept as plain ints until topology classification relabels them.
"""


def as_structure_code(value: int) -> Code:
    """
    Convert an integer read from input into a StructureCode where possible.

    Args:
        value (int): Raw structure identifier.

    Returns:
        Code: The matching StructureCode member, or `value` unchanged when it
            is not part of the enumeration.
    """
    try:
        return StructureCode(value)
    except ValueError:
        return value


@dataclass
class RawNode:
    """
    One traced sample of a reconstruction.

    Attributes:
        sample_number (int): Key of the sample within its graph.
        parent_number (int): Key of the parent sample, -1 for roots.
        structure_code (Code): Declared, then classified, structure code.
        x, y, z (float): Coordinates in input units (µm), offset applied.
        radius (float): Sample radius in input units.
        length_to_parent (float): Distance to the parent sample in mm;
            0.0 means "not supplied".
        allen_id (Optional[int]): Unresolved external atlas region id.
    """
    sample_number: int
    parent_number: int
    structure_code: Code
    x: float
    y: float
    z: float
    radius: float
    length_to_parent: float = 0.0
    allen_id: Optional[int] = None

    @property
    def is_root(self) -> bool:
        return self.parent_number == ROOT_PARENT

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class NodeCounts:
    """Aggregate role counts of a finalized graph."""
    total: int = 0
    soma: int = 0
    path: int = 0
    branch: int = 0
    end: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
