"""Sample profile for a (formula, absorber, edge) triple.

A profile bundles what every correction needs to know about the sample
before any attenuation curve is computed: the parsed composition, which
element absorbs, its edge energy, and the fluorescence energy of that edge.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Tuple

from fluocorr.data.xray_tables import CrossSectionTable, EmissionLine, parse_formula
from fluocorr.errors import InvalidFormula, NoEmissionLines

logger = logging.getLogger(__name__)

FormulaParser = Callable[[str], Mapping[str, float]]


@dataclass(frozen=True)
class SampleProfile:
    """
    Resolved sample description for one correction call.

    Attributes:
        formula: Formula string as given
        composition: Element symbol -> stoichiometric count (read-only)
        absorber_symbol: Symbol of the absorbing element
        absorber_z: Atomic number of the absorbing element
        absorber_count: Stoichiometric count of the absorber in the formula
        edge: Edge label (e.g. 'K', 'L3')
        edge_energy: Edge energy in eV
        fluorescence_energy: Energy of the most intense emission line (eV)
        weighted_fluorescence_energy: Intensity-weighted mean line energy (eV)
        emission_lines: Positive-intensity lines, most intense first
    """

    formula: str
    composition: Mapping[str, float]
    absorber_symbol: str
    absorber_z: int
    absorber_count: float
    edge: str
    edge_energy: float
    fluorescence_energy: float
    weighted_fluorescence_energy: float
    emission_lines: Tuple[EmissionLine, ...]


def _validated_composition(formula: str, parsed: Mapping[str, float]) -> Mapping[str, float]:
    composition = {}
    for symbol, count in parsed.items():
        count = float(count)
        if not math.isfinite(count) or count <= 0.0:
            raise InvalidFormula(
                f"{formula!r} has non-positive or non-finite count {count} for {symbol}"
            )
        composition[symbol] = count
    if not composition:
        raise InvalidFormula(f"no elements in {formula!r}")
    return MappingProxyType(composition)


def _absorber_count(
    table: CrossSectionTable, composition: Mapping[str, float], absorber_z: int
) -> Optional[float]:
    for symbol, count in composition.items():
        if table.resolve_element(symbol) == absorber_z:
            return count
    return None


def sort_by_intensity(lines) -> List[EmissionLine]:
    """Lines ordered by descending intensity; exact ties keep input order."""
    return sorted(lines, key=lambda line: -line.intensity)


def lines_by_intensity(
    table: CrossSectionTable, element: str, initial_level: Optional[str] = None
) -> List[EmissionLine]:
    """Emission lines of an element, most intense first."""
    return sort_by_intensity(table.emission_lines(element, initial_level).values())


def edges_by_energy(table: CrossSectionTable, element: str) -> List[Tuple[str, float]]:
    """(edge label, energy) pairs, highest energy first; exact ties keep table order."""
    return sorted(table.edge_energies(element).items(), key=lambda item: -item[1])


def build_sample_profile(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    parser: FormulaParser = parse_formula,
) -> SampleProfile:
    """
    Resolve composition, absorber, edge and fluorescence energies.

    Args:
        table: Cross-section table used for every lookup
        formula: Sample chemical formula, e.g. 'Fe2O3'
        absorber: Absorbing element (symbol, name)
        edge: Absorption edge label, e.g. 'K'
        parser: Formula parser returning {symbol: count}

    Returns:
        SampleProfile

    Raises:
        InvalidFormula: Formula unparseable or absorber not in it
        NoEmissionLines: No positive-intensity line for the absorber edge
    """
    composition = _validated_composition(formula, parser(formula))

    absorber_z = table.resolve_element(absorber)
    absorber_symbol = table.symbol(absorber_z)
    absorber_count = _absorber_count(table, composition, absorber_z)
    if absorber_count is None:
        raise InvalidFormula(f"{absorber} not found in formula {formula}")

    edge_energy = table.edge_energy(absorber_symbol, edge)

    lines = [
        line
        for line in lines_by_intensity(table, absorber_symbol, edge)
        if math.isfinite(line.intensity) and line.intensity > 0.0
    ]
    if not lines:
        raise NoEmissionLines(f"{absorber} {edge}")

    total_intensity = sum(line.intensity for line in lines)
    weighted_energy = sum(line.intensity * line.energy for line in lines) / total_intensity

    logger.debug(
        "%s in %s: %s edge %.1f eV, strongest line %s at %.1f eV, weighted %.1f eV",
        absorber_symbol, formula, edge, edge_energy,
        lines[0].label, lines[0].energy, weighted_energy,
    )

    return SampleProfile(
        formula=formula,
        composition=composition,
        absorber_symbol=absorber_symbol,
        absorber_z=absorber_z,
        absorber_count=absorber_count,
        edge=edge,
        edge_energy=edge_energy,
        fluorescence_energy=lines[0].energy,
        weighted_fluorescence_energy=weighted_energy,
        emission_lines=tuple(lines),
    )
