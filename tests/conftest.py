"""Shared fixtures: the xraydb-backed table and a small deterministic fake."""

import numpy as np
import pytest

from fluocorr.data.xray_tables import CrossSectionKind, EmissionLine, XrayDBTable


FE_K_EDGE = 7112.0


class FakeTable:
    """
    In-memory cross-section table with closed-form attenuation.

    Fe is linear below its K edge and falls as E⁻³ above it, so pre-edge
    trendlines reproduce the background exactly. The light elements fall
    as E⁻³ everywhere. O has a K edge but no emission lines.
    """

    elements = {
        "N": (7, 14.007),
        "O": (8, 15.999),
        "Si": (14, 28.086),
        "Fe": (26, 55.845),
    }
    scales = {"N": 8.0, "O": 10.0, "Si": 30.0}
    edges = {
        "Fe": {"K": FE_K_EDGE, "L1": 844.6, "L2": 719.9, "L3": 719.9},
        "O": {"K": 543.1},
    }
    lines = {
        "Fe": [
            EmissionLine("Ka1", 6403.8, 0.6, "K", "L3"),
            EmissionLine("Ka2", 6390.8, 0.3, "K", "L2"),
            EmissionLine("Kb1", 7058.0, 0.1, "K", "M3"),
            EmissionLine("La1", 705.0, 1.0, "L3", "M5"),
        ],
    }

    def _symbol(self, element):
        for symbol, (z, _) in self.elements.items():
            if element == symbol or element == z:
                return symbol
        raise ValueError(f"unknown element '{element}'")

    def mass_attenuation(self, element, energies, kind=CrossSectionKind.PHOTO):
        symbol = self._symbol(element)
        e = np.atleast_1d(np.asarray(energies, dtype=float))
        if symbol == "Fe":
            return np.where(e >= FE_K_EDGE, 400.0 * (FE_K_EDGE / e) ** 3, 120.0 - 0.01 * e)
        return self.scales[symbol] * (7000.0 / e) ** 3

    def edge_energy(self, element, edge):
        try:
            return self.edges[self._symbol(element)][edge]
        except KeyError:
            raise ValueError(f"unknown edge '{edge}' for element '{element}'") from None

    def edge_energies(self, element):
        return dict(self.edges.get(self._symbol(element), {}))

    def emission_lines(self, element, initial_level=None):
        return {
            line.label: line
            for line in self.lines.get(self._symbol(element), [])
            if initial_level is None or line.initial_level == initial_level
        }

    def molar_mass(self, element):
        return self.elements[self._symbol(element)][1]

    def resolve_element(self, element):
        return self.elements[self._symbol(element)][0]

    def symbol(self, element):
        return self._symbol(element)


@pytest.fixture
def fake_table():
    return FakeTable()


@pytest.fixture(scope="session")
def xray_table():
    return XrayDBTable()


@pytest.fixture
def fe_k_grid():
    """7000-8000 eV in 5 eV steps."""
    return np.arange(7000.0, 8001.0, 5.0)
