"""
Attenuation sums over an energy grid.

Two families of quantities are provided:

- Stoichiometry-weighted sums, Σ count_i × (μ/ρ)_i(E). These are not in a
  physical unit but cancel in the dimensionless ratios the Tröger, Booth,
  Atoms and Fluo corrections use.
- Linear attenuation in cm⁻¹, ρ × Σ w_i × (μ/ρ)_i(E) with mass fractions
  w_i, for formulas that need an absolute path length.

All cross sections are photoelectric absorption (Elam tables).
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Mapping, Sequence, Tuple, Union

import numpy as np

from fluocorr.core.geometry import as_energy_grid
from fluocorr.core.regression import fit_line
from fluocorr.core.sample import SampleProfile
from fluocorr.data.xray_tables import CrossSectionKind, CrossSectionTable
from fluocorr.errors import InsufficientData, NoEmissionLines

logger = logging.getLogger(__name__)

Energies = Union[Sequence[float], np.ndarray]

# Offset below the edge where the smooth pre-edge absorption is sampled (eV)
PRE_EDGE_OFFSET_EV = 200.0
# Pre-edge trendline window, relative to the edge (eV)
PRE_EDGE_FIT_START_EV = -200.0
PRE_EDGE_FIT_END_EV = -30.0


def _photo(table: CrossSectionTable, element: str, energies: np.ndarray) -> np.ndarray:
    return table.mass_attenuation(element, energies, CrossSectionKind.PHOTO)


def check_density(density_g_cm3: float) -> float:
    """Raise InsufficientData unless density is finite and > 0."""
    if not math.isfinite(density_g_cm3) or density_g_cm3 <= 0.0:
        raise InsufficientData(f"density must be finite and > 0, got {density_g_cm3}")
    return float(density_g_cm3)


# =============================================================================
# Stoichiometry-weighted sums
# =============================================================================


def weighted_mu_total(
    table: CrossSectionTable,
    composition: Mapping[str, float],
    energies: Energies,
) -> np.ndarray:
    """Σ count × μ/ρ over every element of the formula."""
    grid = as_energy_grid(energies)
    total = np.zeros_like(grid)
    for symbol, count in composition.items():
        total += count * _photo(table, symbol, grid)
    return total


def weighted_mu_total_single(
    table: CrossSectionTable,
    composition: Mapping[str, float],
    energy: float,
) -> float:
    """Σ count × μ/ρ at one energy."""
    return float(weighted_mu_total(table, composition, [energy])[0])


def weighted_mu_absorber(
    table: CrossSectionTable,
    profile: SampleProfile,
    energies: Energies,
    subtract_pre_edge: bool = False,
) -> np.ndarray:
    """
    Absorber-only attenuation scaled by its stoichiometric count.

    With ``subtract_pre_edge`` the absorber's own μ/ρ at 200 eV below the
    edge is removed first, leaving only the edge-jump contribution
    (clamped at zero).
    """
    grid = as_energy_grid(energies)
    mu = _photo(table, profile.absorber_symbol, grid)
    pre_edge = 0.0
    if subtract_pre_edge:
        e_below = profile.edge_energy - PRE_EDGE_OFFSET_EV
        pre_edge = float(_photo(table, profile.absorber_symbol, np.array([e_below]))[0])
    return profile.absorber_count * np.maximum(mu - pre_edge, 0.0)


def weighted_mu_background(
    table: CrossSectionTable,
    profile: SampleProfile,
    energies: Energies,
) -> np.ndarray:
    """Σ count × μ/ρ over every element except the absorber."""
    grid = as_energy_grid(energies)
    total = np.zeros_like(grid)
    for symbol, count in profile.composition.items():
        if table.resolve_element(symbol) == profile.absorber_z:
            continue
        total += count * _photo(table, symbol, grid)
    return total


# =============================================================================
# Linear attenuation (cm⁻¹)
# =============================================================================


def composition_mass_fractions(
    table: CrossSectionTable,
    composition: Mapping[str, float],
) -> Dict[str, float]:
    """
    Convert stoichiometry to mass fractions.

    w_i = count_i × M_i / Σ count_j × M_j
    """
    masses = {symbol: count * table.molar_mass(symbol) for symbol, count in composition.items()}
    total = sum(masses.values())
    if not math.isfinite(total) or total <= 0.0:
        raise InsufficientData("formula produced non-positive total mass")
    return {symbol: mass / total for symbol, mass in masses.items()}


def compound_mu_linear(
    table: CrossSectionTable,
    mass_fractions: Mapping[str, float],
    density_g_cm3: float,
    energies: Energies,
) -> np.ndarray:
    """Linear attenuation μ(E) = ρ Σ w_i (μ/ρ)_i(E) in cm⁻¹."""
    density = check_density(density_g_cm3)
    grid = as_energy_grid(energies)
    mu_rho = np.zeros_like(grid)
    for symbol, fraction in mass_fractions.items():
        mu_rho += fraction * _photo(table, symbol, grid)
    return density * mu_rho


def compound_mu_linear_single(
    table: CrossSectionTable,
    mass_fractions: Mapping[str, float],
    density_g_cm3: float,
    energy: float,
) -> float:
    """Linear attenuation at one energy in cm⁻¹."""
    return float(compound_mu_linear(table, mass_fractions, density_g_cm3, [energy])[0])


def absorber_mass_fraction(profile: SampleProfile, mass_fractions: Mapping[str, float]) -> float:
    try:
        return mass_fractions[profile.absorber_symbol]
    except KeyError:
        raise InsufficientData(
            f"absorber {profile.absorber_symbol} not found in mass fractions"
        ) from None


def absorber_mu_linear(
    table: CrossSectionTable,
    profile: SampleProfile,
    mass_fractions: Mapping[str, float],
    density_g_cm3: float,
    energies: Energies,
) -> np.ndarray:
    """Raw absorber linear attenuation ρ w_a (μ/ρ)_a(E), edge and background together."""
    density = check_density(density_g_cm3)
    grid = as_energy_grid(energies)
    w_absorber = absorber_mass_fraction(profile, mass_fractions)
    return density * w_absorber * _photo(table, profile.absorber_symbol, grid)


def absorber_edge_mu_linear_trendline(
    table: CrossSectionTable,
    profile: SampleProfile,
    energies: Energies,
    density_g_cm3: float,
) -> np.ndarray:
    """
    Edge-jump part of the absorber linear attenuation (cm⁻¹).

    A straight line is fitted to the raw absorber attenuation over
    [E0 - 200, E0 - 30] eV and subtracted:

        μ̄_a(E) = max(μ_raw(E) - max(line(E), 0), 0)

    With fewer than two usable pre-edge points, or a degenerate fit, the
    baseline is the raw attenuation at E0 - 200 eV instead.
    """
    density = check_density(density_g_cm3)
    grid = as_energy_grid(energies)
    mass_fractions = composition_mass_fractions(table, profile.composition)
    w_absorber = absorber_mass_fraction(profile, mass_fractions)
    mu_raw = absorber_mu_linear(table, profile, mass_fractions, density, grid)

    fit_min = profile.edge_energy + PRE_EDGE_FIT_START_EV
    fit_max = profile.edge_energy + PRE_EDGE_FIT_END_EV
    window = (grid >= fit_min) & (grid <= fit_max)
    fit = fit_line(grid[window], mu_raw[window])

    if fit is not None:
        intercept, slope = fit
        baseline = intercept + slope * grid
        baseline = np.where(np.isfinite(baseline), np.maximum(baseline, 0.0), 0.0)
    else:
        e_pre = profile.edge_energy - PRE_EDGE_OFFSET_EV
        logger.warning(
            "Pre-edge trendline for %s unavailable (%d points in window); "
            "using single-point baseline at %.1f eV",
            profile.absorber_symbol, int(np.count_nonzero(window)), e_pre,
        )
        mu_pre = density * w_absorber * float(
            _photo(table, profile.absorber_symbol, np.array([e_pre]))[0]
        )
        baseline = np.full_like(grid, max(mu_pre, 0.0))

    return np.maximum(np.maximum(mu_raw, 0.0) - baseline, 0.0)


def weighted_fluorescence_mu(
    table: CrossSectionTable,
    profile: SampleProfile,
    mass_fractions: Mapping[str, float],
    density_g_cm3: float,
) -> Tuple[float, float]:
    """
    Branching-weighted fluorescence attenuation.

    Returns:
        (μ_f in cm⁻¹, weighted fluorescence energy in eV), both averaged over
        the absorber's positive-intensity lines for the profile's edge
    """
    density = check_density(density_g_cm3)
    lines = [
        line for line in profile.emission_lines
        if math.isfinite(line.intensity) and line.intensity > 0.0
    ]
    if not lines:
        raise NoEmissionLines(
            f"{profile.absorber_symbol} {profile.edge} has no positive-intensity lines"
        )
    line_energies = np.array([line.energy for line in lines])
    weights = np.array([line.intensity for line in lines])
    mu_lines = compound_mu_linear(table, mass_fractions, density, line_energies)
    weight_sum = float(np.sum(weights))
    mu_f = float(np.sum(weights * mu_lines)) / weight_sum
    energy_f = float(np.sum(weights * line_energies)) / weight_sum
    return mu_f, energy_f
