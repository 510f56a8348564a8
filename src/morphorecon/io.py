# src/morphorecon/io.py
from __future__ import annotations

# General imports (stdlib)
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

# Local imports
from .exceptions import DataNotFound, StructuralError
from .structure import ROOT_PARENT, RawNode, StructureCode, as_structure_code
from .topology import ReconstructionGraph

logger = logging.getLogger(__name__)

Line = Union[str, bytes]

OFFSET_DIRECTIVE = "# OFFSET "
OFFSET_VALUES_START = len(OFFSET_DIRECTIVE)
SWC_TOKEN_COUNT = 7
READ_CHUNK_SIZE = 1 << 16

AXON_PATH_CODE = StructureCode.AXON
DENDRITE_PATH_CODE = StructureCode.BASAL_DENDRITE


@dataclass
class ParsedReconstruction:
    """
    Axon and dendrite graphs parsed from one source.

    Either graph is None when the source holds no structure of that kind.
    """
    source: str
    comments: str
    axon: Optional[ReconstructionGraph]
    dendrite: Optional[ReconstructionGraph]


def _decode(line: Line) -> str:
    # Undecodable bytes become U+FFFD rather than failing the whole file
    return line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line


def _lenient_float(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        return float("nan")


def _lenient_code(token: str) -> int:
    try:
        return int(float(token))
    except (ValueError, OverflowError):
        return int(StructureCode.UNDEFINED)


class _SwcLineReader:
    """Line-by-line SWC state: running coordinate offset and comment text."""

    def __init__(self) -> None:
        self.offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.comments = ""

    def feed(self, line: Line) -> Optional[RawNode]:
        """
        Consume one line; return the node it defines, if any.

        Blank lines are ignored. Comment lines are accumulated verbatim, and
        an `# OFFSET x y z` comment replaces the running offset. Data lines
        that do not split into exactly seven tokens, or whose sample or parent
        number is not an integer, are dropped. A structure code written as a
        float is truncated; an unreadable one becomes UNDEFINED, and
        unreadable coordinates become NaN.
        """
        text = _decode(line).rstrip("\r\n")
        data = text.strip()

        if not data:
            return None

        if data.startswith("#"):
            self.comments += text + "\n"
            if data.startswith(OFFSET_DIRECTIVE):
                self._set_offset(data)
            return None

        tokens = data.split()
        if len(tokens) != SWC_TOKEN_COUNT:
            logger.debug("Dropping SWC line with %d tokens: %r", len(tokens), data)
            return None

        try:
            sample_number = int(tokens[0])
            parent_number = int(tokens[6])
        except ValueError:
            logger.debug("Dropping SWC line with non-integer sample/parent: %r", data)
            return None

        structure = _lenient_code(tokens[1])
        x, y, z, radius = (_lenient_float(t) for t in tokens[2:6])

        # Roots are soma regardless of their declared structure
        if parent_number == ROOT_PARENT and structure != StructureCode.SOMA:
            self.comments += (
                f"# Un-parented (root) sample {sample_number} converted "
                f"from {structure} to soma ({int(StructureCode.SOMA)})\n"
            )
            structure = StructureCode.SOMA

        dx, dy, dz = self.offset
        return RawNode(
            sample_number=sample_number,
            parent_number=parent_number,
            structure_code=as_structure_code(structure),
            x=x + dx,
            y=y + dy,
            z=z + dz,
            radius=radius,
        )

    def _set_offset(self, data: str) -> None:
        values = data[OFFSET_VALUES_START:].split()
        if len(values) != 3:
            logger.debug("Ignoring malformed offset directive: %r", data)
            return
        try:
            self.offset = tuple(float(v) for v in values)
        except ValueError:
            logger.debug("Ignoring malformed offset directive: %r", data)


def parse_swc(lines: Iterable[Line], path_code: Optional[StructureCode] = None) -> ReconstructionGraph:
    """
    Parse SWC text into one finalized ReconstructionGraph.

    Use:
        Consume `lines` in order. Comments (including any conversion notes for
        roots forced to soma) land in the graph's comment accumulator, and
        coordinates are shifted by the `# OFFSET` directive in force when the
        line was read. Malformed data lines are silently discarded; callers
        needing strict validation should inspect the resulting counts.

    Args:
        lines (Iterable[Line]): SWC lines, str or UTF-8 bytes, e.g. an open file.
        path_code (Optional[StructureCode]): Code for one-child nodes; None
            keeps their declared codes.

    Returns:
        ReconstructionGraph: The finalized graph.
    """
    reader = _SwcLineReader()
    graph = ReconstructionGraph(path_code)

    for line in lines:
        node = reader.feed(line)
        if node is not None:
            graph.add_sample(node)

    graph.add_comment(reader.comments)
    graph.offset = reader.offset
    graph.finalize()

    return graph


def parse_swc_reconstruction(lines: Iterable[Line], source: str = "") -> ParsedReconstruction:
    """
    Parse SWC text into separate axon and dendrite graphs.

    Use:
        Soma samples go to both graphs, axon samples to the axon graph, basal
        and apical dendrite samples to the dendrite graph. Samples with any
        other structure code are dropped. Both graphs share the comments.

    Args:
        lines (Iterable[Line]): SWC lines.
        source (str): Name of the source, e.g. the file name.

    Returns:
        ParsedReconstruction: Finalized axon (path code AXON) and dendrite
            (path code BASAL_DENDRITE) graphs.
    """
    reader = _SwcLineReader()
    axon = ReconstructionGraph(AXON_PATH_CODE)
    dendrite = ReconstructionGraph(DENDRITE_PATH_CODE)

    for line in lines:
        node = reader.feed(line)
        if node is None:
            continue

        code = node.structure_code
        if code == StructureCode.SOMA:
            axon.add_sample(node)
            # Each graph relabels its own nodes
            dendrite.add_sample(RawNode(**vars(node)))
        elif code == StructureCode.AXON:
            axon.add_sample(node)
        elif code in (StructureCode.BASAL_DENDRITE, StructureCode.APICAL_DENDRITE):
            dendrite.add_sample(node)
        else:
            logger.debug("Unexpected SWC structure %s for sample %d", code, node.sample_number)

    for graph in (axon, dendrite):
        graph.add_comment(reader.comments)
        graph.offset = reader.offset
        graph.finalize()

    return ParsedReconstruction(source=source, comments=reader.comments, axon=axon, dendrite=dendrite)


def _read_all(source: Any) -> str:
    # File-like object, whole document, or an iterable of chunks
    if hasattr(source, "read"):
        return _decode(source.read())
    if isinstance(source, (str, bytes)):
        return _decode(source)
    chunks = list(source)
    # Byte chunks may split a multi-byte character, so join before decoding
    if chunks and all(isinstance(chunk, bytes) for chunk in chunks):
        return _decode(b"".join(chunks))
    return "".join(_decode(chunk) for chunk in chunks)


def _load_neurons(text: str) -> Tuple[str, List[Any]]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise StructuralError(f"Error parsing JSON: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("neurons"), list):
        raise StructuralError("Invalid JSON structure: expected a 'neurons' array.")

    comment = document.get("comment") or ""
    return str(comment), document["neurons"]


def _json_node(record: Dict[str, Any]) -> RawNode:
    try:
        allen_id = record.get("allenId")
        return RawNode(
            sample_number=int(record["sampleNumber"]),
            parent_number=int(record["parentNumber"]),
            structure_code=as_structure_code(int(record.get("structureIdentifier") or 0)),
            x=float(record["x"]),
            y=float(record["y"]),
            z=float(record["z"]),
            radius=float(record.get("radius") or 0.0),
            length_to_parent=float(record.get("lengthToParent") or 0.0),
            allen_id=int(allen_id) if allen_id is not None else None,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StructuralError(f"Invalid JSON node record {record!r}: {e}") from e


def _graph_from_records(records: Optional[List[Dict[str, Any]]], path_code: StructureCode, comment: str) -> Optional[ReconstructionGraph]:
    if records is None:
        return None

    graph = ReconstructionGraph(path_code)
    for record in records:
        graph.add_sample(_json_node(record))

    graph.add_comment(comment)
    graph.finalize()
    return graph


def parse_json(stream: Any) -> Tuple[Optional[ReconstructionGraph], Optional[ReconstructionGraph]]:
    """
    Parse a whole JSON reconstruction document.

    Use:
        Read the full document, take its first neuron and build one graph
        from each of its `axon` and `dendrite` arrays. A missing array means
        "no structure of that kind" and yields None in its place.

    Args:
        stream (Any): File-like object, str/bytes document, or iterable of chunks.

    Returns:
        Tuple[Optional[ReconstructionGraph], Optional[ReconstructionGraph]]:
            (axon_graph, dendrite_graph), each finalized.

    Raises:
        StructuralError: If the text is not JSON or holds no neuron.
    """
    comment, neurons = _load_neurons(_read_all(stream))

    if not neurons or not isinstance(neurons[0], dict):
        raise StructuralError("Invalid JSON structure: expected at least one neuron object.")

    neuron = neurons[0]
    return (
        _graph_from_records(neuron.get("axon"), AXON_PATH_CODE, comment),
        _graph_from_records(neuron.get("dendrite"), DENDRITE_PATH_CODE, comment),
    )


def parse_json_chunked(chunks: Iterable[Line]) -> Tuple[Optional[ReconstructionGraph], Optional[ReconstructionGraph]]:
    """
    Parse a JSON reconstruction document delivered in chunks.

    Use:
        Consume chunks until end of input, then walk the `neurons` records in
        order. Every record must carry both `axon` and `dendrite`; the last
        record supplies the result. No result is exposed before the whole
        input has been read.

    Args:
        chunks (Iterable[Line]): Text or UTF-8 byte chunks in arrival order.

    Returns:
        Tuple[Optional[ReconstructionGraph], Optional[ReconstructionGraph]]:
            (axon_graph, dendrite_graph); both None for an empty `neurons` array.

    Raises:
        StructuralError: If a record lacks `axon` or `dendrite`, or the text
            is not a JSON document with a `neurons` array.
    """
    comment, neurons = _load_neurons(_read_all(chunks))

    axon = dendrite = None
    for record in neurons:
        if not isinstance(record, dict) or "axon" not in record or "dendrite" not in record:
            raise StructuralError("Invalid JSON structure: expected 'axon' and 'dendrite' properties.")
        axon, dendrite = record["axon"], record["dendrite"]

    return (
        _graph_from_records(axon, AXON_PATH_CODE, comment),
        _graph_from_records(dendrite, DENDRITE_PATH_CODE, comment),
    )


def discover_reconstructions(
    directory: Path,
    swc_suffix: str = ".swc",
    json_suffix: str = ".json",
    exclude: Optional[Path] = None,
) -> List[Path]:
    """
    Recursively collect SWC and JSON reconstruction files.

    Args:
        directory (Path): Root directory to search.
        swc_suffix (str): Filename suffix of SWC files.
        json_suffix (str): Filename suffix of JSON files.
        exclude (Optional[Path]): Directory tree to skip, e.g. the output directory.

    Returns:
        List[Path]: Matching files, sorted by path.

    Raises:
        DataNotFound: If the directory does not exist or holds no matching file.
    """
    root = Path(directory)
    if not root.is_dir():
        raise DataNotFound(f"Directory not found: {root}")

    skipped = Path(exclude).resolve() if exclude is not None else None

    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(str(root)):
        # Prune the excluded tree in place so os.walk does not descend into it
        if skipped is not None:
            dirnames[:] = [d for d in dirnames if (Path(dirpath) / d).resolve() != skipped]

        for item in filenames:
            if item.endswith(swc_suffix) or item.endswith(json_suffix):
                found.append(Path(dirpath) / item)

    if not found:
        raise DataNotFound(f"No '*{swc_suffix}' or '*{json_suffix}' files found under: '{root}'")

    return sorted(found)


def read_reconstruction(filepath: Path, chunked: bool = False, json_suffix: str = ".json") -> ParsedReconstruction:
    """
    Parse one reconstruction file, choosing the parser by suffix.

    Args:
        filepath (Path): SWC or JSON file.
        chunked (bool): Read JSON files in chunked mode.
        json_suffix (str): Filename suffix identifying JSON files.

    Returns:
        ParsedReconstruction: Parsed axon/dendrite graphs.

    Raises:
        DataNotFound: If the file does not exist.
        StructuralError: If a JSON file does not have the expected structure.
    """
    path = Path(filepath)
    if not path.is_file():
        raise DataNotFound(f"File not found: {path}")

    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        if not path.name.endswith(json_suffix):
            return parse_swc_reconstruction(fh, source=path.name)

        if chunked:
            axon, dendrite = parse_json_chunked(iter(lambda: fh.read(READ_CHUNK_SIZE), ""))
        else:
            axon, dendrite = parse_json(fh)

    # Both graphs carry the document comment; either one will do
    carrier = axon if axon is not None else dendrite
    return ParsedReconstruction(
        source=path.name,
        comments=carrier.comments if carrier is not None else "",
        axon=axon,
        dendrite=dendrite,
    )
