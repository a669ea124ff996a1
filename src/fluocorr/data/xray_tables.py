"""
X-ray cross-section tables.

Provides the lookup interface the corrections need (mass attenuation,
edge energies, emission lines, molar masses, element resolution) and an
implementation backed by the Elam tables shipped with xraydb.

The table is always passed into a computation explicitly; nothing in the
package keeps a module-level database instance.

References:
    Elam, Ravel & Sieber, Radiat. Phys. Chem. 63 (2002) 121-128
    https://xraypy.github.io/XrayDB/
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Protocol, Sequence, Union

import numpy as np
import xraydb

from fluocorr.errors import InvalidFormula


class CrossSectionKind(Enum):
    """Cross-section channel selector for the Elam tables."""

    PHOTO = "photo"  # Photoelectric absorption
    COHERENT = "coh"  # Rayleigh scattering
    INCOHERENT = "incoh"  # Compton scattering
    TOTAL = "total"


@dataclass(frozen=True)
class EmissionLine:
    """
    Single fluorescence emission line.

    Attributes:
        label: Siegbahn label (e.g. 'Ka1')
        energy: Line energy in eV
        intensity: Relative branching intensity within the initial level
        initial_level: Core level the vacancy starts in (e.g. 'K')
        final_level: Level the vacancy moves to (e.g. 'L3')
    """

    label: str
    energy: float
    intensity: float
    initial_level: str
    final_level: str


class CrossSectionTable(Protocol):
    """Read-only element/edge/energy lookups used by the corrections."""

    def mass_attenuation(
        self,
        element: str,
        energies: Union[float, Sequence[float], np.ndarray],
        kind: CrossSectionKind = CrossSectionKind.PHOTO,
    ) -> np.ndarray:
        ...

    def edge_energy(self, element: str, edge: str) -> float:
        ...

    def edge_energies(self, element: str) -> Dict[str, float]:
        ...

    def emission_lines(
        self, element: str, initial_level: Optional[str] = None
    ) -> Dict[str, EmissionLine]:
        ...

    def molar_mass(self, element: str) -> float:
        ...

    def resolve_element(self, element: Union[str, int]) -> int:
        ...

    def symbol(self, element: Union[str, int]) -> str:
        ...


class XrayDBTable:
    """
    Cross-section table backed by ``xraydb.XrayDB``.

    Parameters
    ----------
    dbname : str, optional
        Path to an alternative xraydb sqlite file. Defaults to the
        database bundled with the xraydb package.

    Notes
    -----
    Lookup failures (unknown element, malformed input) are raised by
    xraydb itself and are not translated. An unknown edge label, for which
    xraydb returns ``None``, is raised here as ``ValueError``.
    """

    def __init__(self, dbname: Optional[str] = None):
        if dbname is None:
            self._db = xraydb.XrayDB()
        else:
            self._db = xraydb.XrayDB(dbname=dbname)

    def mass_attenuation(
        self,
        element: str,
        energies: Union[float, Sequence[float], np.ndarray],
        kind: CrossSectionKind = CrossSectionKind.PHOTO,
    ) -> np.ndarray:
        """
        Mass attenuation coefficient μ/ρ (cm²/g) at each energy (eV).

        Parameters
        ----------
        element : str
            Element symbol, name, or atomic number
        energies : float or array
            Photon energies in eV
        kind : CrossSectionKind
            Cross-section channel, photoelectric absorption by default

        Returns
        -------
        np.ndarray
            1-D array aligned with ``energies``
        """
        energies = np.atleast_1d(np.asarray(energies, dtype=float))
        mu = self._db.mu_elam(element, energies, kind=kind.value)
        return np.atleast_1d(np.asarray(mu, dtype=float))

    def edge_energy(self, element: str, edge: str) -> float:
        """Absorption edge energy in eV."""
        found = self._db.xray_edge(element, edge)
        if found is None:
            raise ValueError(f"unknown edge '{edge}' for element '{element}'")
        return float(found.energy)

    def edge_energies(self, element: str) -> Dict[str, float]:
        """All edges of an element as {label: energy_eV}."""
        return {
            label: float(edge.energy)
            for label, edge in self._db.xray_edges(element).items()
        }

    def emission_lines(
        self, element: str, initial_level: Optional[str] = None
    ) -> Dict[str, EmissionLine]:
        """Emission lines of an element, optionally from one initial level."""
        lines = self._db.xray_lines(element, initial_level=initial_level)
        return {
            label: EmissionLine(
                label=label,
                energy=float(line.energy),
                intensity=float(line.intensity),
                initial_level=str(line.initial_level),
                final_level=str(line.final_level),
            )
            for label, line in lines.items()
        }

    def molar_mass(self, element: str) -> float:
        """Standard atomic weight in g/mol."""
        return float(self._db.molar_mass(element))

    def resolve_element(self, element: Union[str, int]) -> int:
        """Atomic number for a symbol, name, or atomic number."""
        return int(self._db.atomic_number(element))

    def symbol(self, element: Union[str, int]) -> str:
        """Element symbol for a symbol, name, or atomic number."""
        return str(self._db.symbol(element))


def parse_formula(formula: str) -> Mapping[str, float]:
    """
    Parse a chemical formula into {element symbol: stoichiometric count}.

    Fractional counts are accepted, e.g. ``'Fe0.001Si0.999O2'``.

    Raises
    ------
    InvalidFormula
        If the formula cannot be parsed or yields no elements
    """
    if not isinstance(formula, str) or not formula.strip():
        raise InvalidFormula(f"empty formula {formula!r}")
    try:
        parsed = xraydb.chemparse(formula.strip())
    except Exception as exc:
        raise InvalidFormula(f"cannot parse {formula!r}: {exc}") from exc
    if not parsed:
        raise InvalidFormula(f"no elements in {formula!r}")
    return {str(sym): float(count) for sym, count in parsed.items()}
