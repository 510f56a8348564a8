# tests/test_portal.py
"""Renumbering, paging and portal document assembly."""
import copy

import pytest

from morphorecon.exceptions import ValidationError
from morphorecon.io import parse_json, parse_swc_reconstruction
from morphorecon.portal import (
    PORTAL_COLUMNS,
    ChunkInfo,
    IndexedNode,
    map_nodes,
    paginate,
    portal_frame,
    reconstruction_document,
    renumber,
)
from morphorecon.structure import RawNode, StructureCode
from morphorecon.topology import ReconstructionGraph


def make_node(index, parent_index, x=0.0, y=0.0, z=0.0, **kwargs):
    return IndexedNode(index, parent_index, x, y, z, 1.0, **kwargs)


class TestRenumber:

    def test_sequential_indices(self):
        result = renumber([make_node(3, -1), make_node(4, 3), make_node(5, 4)], StructureCode.AXON)

        assert [n.sample_number for n in result] == [1, 2, 3]
        assert [n.parent_number for n in result] == [-1, 1, 2]

    def test_unsorted_input_is_sorted_by_index(self):
        result = renumber([make_node(10, 5), make_node(5, -1), make_node(7, 5)])

        assert [n.sample_number for n in result] == [1, 2, 3]
        assert [n.parent_number for n in result] == [-1, 1, 1]

    def test_two_roots(self):
        result = renumber([make_node(10, -1), make_node(5, -1), make_node(7, 5)])

        assert [n.parent_number for n in result] == [-1, 1, -1]

    @pytest.mark.parametrize("order", [
        [1, 5, 6, 7, 12, 13],
        [13, 6, 1, 12, 7, 5],
    ])
    def test_gaps_in_indices(self, order):
        parents = {1: -1, 5: 1, 6: 5, 7: 6, 12: 7, 13: 12}

        result = renumber([make_node(i, parents[i]) for i in order])

        assert [n.sample_number for n in result] == [1, 2, 3, 4, 5, 6]
        assert [n.parent_number for n in result] == [-1, 1, 2, 3, 4, 5]

    def test_payload_is_preserved(self):
        node = make_node(5, -1, 10.5, 20.3, 30.1, length_to_parent=3.7, allen_id=12)
        node.radius = 2.5

        result = renumber([node], StructureCode.SOMA)[0]

        assert result.sample_number == 1
        assert (result.x, result.y, result.z) == (10.5, 20.3, 30.1)
        assert result.radius == 2.5
        assert result.length_to_parent == 3.7
        assert result.allen_id == 12

    def test_structure_override(self):
        nodes = [
            make_node(1, -1, structure_identifier=StructureCode.SOMA),
            make_node(2, 1, structure_identifier=StructureCode.END_POINT),
        ]

        overridden = renumber(nodes, StructureCode.BASAL_DENDRITE)
        kept = renumber(nodes)

        assert [n.structure_identifier for n in overridden] == [StructureCode.BASAL_DENDRITE] * 2
        assert [n.structure_identifier for n in kept] == [StructureCode.SOMA, StructureCode.END_POINT]

    def test_input_is_not_mutated(self):
        nodes = [make_node(10, -1), make_node(3, -1), make_node(7, 3)]
        before = copy.deepcopy(nodes)

        renumber(nodes)

        assert nodes == before

    def test_single_and_empty(self):
        single = renumber([make_node(42, -1)])

        assert [(n.sample_number, n.parent_number) for n in single] == [(1, -1)]
        assert renumber([]) == []

    def test_unknown_parent_passes_through(self):
        result = renumber([make_node(5, 2), make_node(6, 5)])

        assert [(n.sample_number, n.parent_number) for n in result] == [(1, 2), (2, 1)]

    def test_renumbering_is_idempotent(self):
        first = renumber([make_node(13, 12), make_node(12, 3), make_node(3, -1)])

        second = renumber([n.as_indexed() for n in first])

        assert second == first

    def test_numbers_are_dense(self):
        result = renumber([make_node(i * 7, -1 if i == 0 else (i - 1) * 7) for i in range(25)])

        assert sorted(n.sample_number for n in result) == list(range(1, 26))


class TestMapNodes:

    def test_indices_are_kept(self):
        result = map_nodes([make_node(9, 4), make_node(4, -1)], StructureCode.AXON)

        assert [(n.sample_number, n.parent_number) for n in result] == [(9, 4), (4, -1)]
        assert all(n.structure_identifier == StructureCode.AXON for n in result)


class TestPaginate:

    def nodes(self, count):
        return renumber([make_node(i, i - 1 if i > 1 else -1) for i in range(1, count + 1)])

    def test_first_page(self):
        page, info = paginate(self.nodes(5), 0, 2)

        assert [n.sample_number for n in page] == [1, 2]
        assert info == ChunkInfo(total_count=5, offset=0, limit=2, has_more=True)

    def test_last_page(self):
        page, info = paginate(self.nodes(5), 4, 2)

        assert [n.sample_number for n in page] == [5]
        assert info.has_more is False

    def test_offset_past_end(self):
        page, info = paginate(self.nodes(3), 10, 2)

        assert page == []
        assert info.total_count == 3
        assert info.has_more is False

    def test_without_limit(self):
        page, info = paginate(self.nodes(4), 1)

        assert len(page) == 3
        assert info.limit == 4
        assert info.has_more is False

    @pytest.mark.parametrize("offset, limit", [(-1, None), (0, 0), (0, -3)])
    def test_invalid_arguments(self, offset, limit):
        with pytest.raises(ValidationError):
            paginate(self.nodes(2), offset, limit)

    def test_chunk_info_dict(self):
        _, info = paginate(self.nodes(3), 0, 2)

        assert info.to_dict() == {"totalCount": 3, "offset": 0, "limit": 2, "hasMore": True}


class TestPortalFrame:

    def test_columns_and_values(self):
        frame = portal_frame(renumber([make_node(8, -1), make_node(9, 8, x=2.0)], StructureCode.AXON))

        assert list(frame.columns) == PORTAL_COLUMNS
        assert frame["sampleNumber"].tolist() == [1, 2]
        assert frame["parentNumber"].tolist() == [-1, 1]
        assert frame["structureIdentifier"].tolist() == [2, 2]
        assert frame["x"].tolist() == [0.0, 2.0]

    def test_empty(self):
        frame = portal_frame([])

        assert frame.empty
        assert list(frame.columns) == PORTAL_COLUMNS


class TestReconstructionDocument:

    def test_document_from_json(self, neuron_json):
        axon, dendrite = parse_json(neuron_json)

        document = reconstruction_document(axon, dendrite, comment="c", id_string="N1")
        neuron = document["neurons"][0]

        assert document["comment"] == "c"
        assert neuron["idString"] == "N1"
        assert [n["sampleNumber"] for n in neuron["axon"]] == [1, 2, 3, 4]
        assert [n["parentNumber"] for n in neuron["axon"]] == [-1, 1, 2, 2]
        assert [n["structureIdentifier"] for n in neuron["axon"]] == [1, 5, 6, 6]
        assert neuron["soma"]["sampleNumber"] == 1
        assert neuron["soma"]["allenId"] == 997
        assert "axonChunkInfo" not in neuron

    def test_structures_are_numbered_independently(self, mixed_swc_lines):
        parsed = parse_swc_reconstruction(mixed_swc_lines)

        neuron = reconstruction_document(parsed.axon, parsed.dendrite)["neurons"][0]

        assert [n["sampleNumber"] for n in neuron["dendrite"]] == [1, 2, 3, 4]
        assert [n["parentNumber"] for n in neuron["dendrite"]] == [-1, 1, 2, 1]

    def test_paged_document(self, neuron_json):
        axon, dendrite = parse_json(neuron_json)

        neuron = reconstruction_document(axon, dendrite, offset=2, limit=2)["neurons"][0]

        assert [n["sampleNumber"] for n in neuron["axon"]] == [3, 4]
        assert neuron["dendrite"] == []
        assert neuron["axonChunkInfo"] == {"totalCount": 4, "offset": 2, "limit": 2, "hasMore": False}
        assert neuron["dendriteChunkInfo"]["totalCount"] == 2
        assert neuron["soma"]["sampleNumber"] == 1

    def test_first_node_is_labelled_soma(self):
        axon = ReconstructionGraph(StructureCode.AXON)
        axon.add_sample(RawNode(10, -1, StructureCode.SOMA, 0.0, 0.0, 0.0, 5.0))
        axon.add_sample(RawNode(5, 10, StructureCode.AXON, 0.0, 0.0, 3.0, 1.0))
        axon.finalize()

        neuron = reconstruction_document(axon, None)["neurons"][0]

        assert [n["parentNumber"] for n in neuron["axon"]] == [2, -1]
        assert [n["structureIdentifier"] for n in neuron["axon"]] == [1, 1]
        assert neuron["soma"]["sampleNumber"] == 2

    def test_missing_structures(self, neuron_json):
        _, dendrite = parse_json(neuron_json)

        neuron = reconstruction_document(None, dendrite)["neurons"][0]

        assert "axon" not in neuron
        assert len(neuron["dendrite"]) == 2
        assert neuron["soma"]["x"] == 0.0

    def test_no_structures(self):
        neuron = reconstruction_document(None, None)["neurons"][0]

        assert neuron == {"idString": "", "soma": None}
