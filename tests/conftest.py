# tests/conftest.py
from __future__ import annotations

import json

import pytest


@pytest.fixture
def chain_swc_lines():
    """Soma → path → end point."""
    return [
        "1 1 0 0 0 1.0 -1",
        "2 2 1 1 1 1.0 1",
        "3 2 2 2 2 1.0 2",
    ]


@pytest.fixture
def mixed_swc_lines():
    """
    One soma with an axon chain, a basal dendrite chain, an apical end point
    and one sample of an unsupported structure type.
    """
    return [
        "# DOI: 10.0000/example",
        "# Traced by hand",
        "",
        "1 1 0 0 0 5.0 -1",
        "2 2 0 0 3 1.0 1",
        "3 2 0 0 6 1.0 2",
        "4 3 0 4 0 1.0 1",
        "5 3 0 8 0 1.0 4",
        "6 4 0 0 -4 1.0 1",
        "7 7 1 1 1 1.0 1",
    ]


def _record(sample, parent, structure, x, y, z, radius=1.0, **extra):
    record = {
        "sampleNumber": sample,
        "parentNumber": parent,
        "structureIdentifier": structure,
        "x": x,
        "y": y,
        "z": z,
        "radius": radius,
    }
    record.update(extra)
    return record


@pytest.fixture
def neuron_document():
    """JSON document with one neuron carrying both structures."""
    return {
        "comment": "exported for tests",
        "neurons": [
            {
                "axon": [
                    _record(1, -1, 1, 0, 0, 0, allenId=997),
                    _record(2, 1, 2, 0, 0, 2000, allenId=315),
                    _record(3, 2, 2, 0, 0, 3000, lengthToParent=7.5),
                    _record(4, 2, 2, 0, 1000, 2000),
                ],
                "dendrite": [
                    _record(1, -1, 1, 0, 0, 0),
                    _record(2, 1, 3, 0, 3, 4),
                ],
            }
        ],
    }


@pytest.fixture
def neuron_json(neuron_document):
    return json.dumps(neuron_document)
