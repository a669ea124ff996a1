"""
Fluo self-absorption correction (Haskel, Ravel, Stern).

The only correction that works on normalized μ(E) rather than χ(k), so it
also applies to the XANES region where χ(k) is undefined.

Reference: D. Haskel, FLUO: Correcting XANES for self-absorption in
fluorescence data (1999); B. Ravel, Athena documentation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from fluocorr.core.attenuation import weighted_mu_background, weighted_mu_total_single
from fluocorr.core.geometry import (
    FluorescenceGeometry,
    as_energy_grid,
    readonly,
    resolve_geometry,
)
from fluocorr.core.sample import build_sample_profile
from fluocorr.data.xray_tables import CrossSectionKind, CrossSectionTable
from fluocorr.errors import InsufficientData

logger = logging.getLogger(__name__)

# Reference energy above the edge for the absorber cross section (eV)
REFERENCE_OFFSET_EV = 50.0
DEGENERATE_DENOMINATOR = 1e-30


@dataclass(frozen=True)
class FluoParams:
    """
    Precomputed Fluo correction parameters.

    Attributes:
        energies: Energy grid (eV)
        beta: μ_total(E_fluor) / μ_absorber(E0 + 50 eV)
        gamma_prime: μ_background(E0 + 50 eV) / μ_absorber(E0 + 50 eV)
        ratio: Geometry ratio g = sin(incident) / sin(exit)
        mu_background_norm: μ_background(E) / μ_absorber(E0 + 50 eV) on the grid
        edge_energy: Edge energy (eV)
        fluorescence_energy: Fluorescence line energy (eV)
    """

    energies: np.ndarray
    beta: float
    gamma_prime: float
    ratio: float
    mu_background_norm: np.ndarray
    edge_energy: float
    fluorescence_energy: float

    def correct_mu(self, mu_norm: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """Correct normalized μ(E); see :func:`correct_mu`."""
        return correct_mu(self, mu_norm)

    def to_dict(self) -> dict:
        return {
            "schema": "fluocorr.fluo.v1",
            "energies": self.energies.tolist(),
            "beta": self.beta,
            "gamma_prime": self.gamma_prime,
            "ratio": self.ratio,
            "mu_background_norm": self.mu_background_norm.tolist(),
            "edge_energy": self.edge_energy,
            "fluorescence_energy": self.fluorescence_energy,
        }


def fluo_params(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Union[Sequence[float], np.ndarray],
    geometry: Optional[FluorescenceGeometry] = None,
) -> FluoParams:
    """
    Compute the Fluo correction parameters for a sample.

    Args:
        table: Cross-section table
        formula: Sample chemical formula
        absorber: Absorbing element
        edge: Absorption edge (e.g. 'K')
        energies: Energy grid in eV
        geometry: Measurement geometry, 45°/45° when omitted

    Returns:
        FluoParams, to be applied to normalized μ(E) with ``correct_mu``
    """
    grid = as_energy_grid(energies)
    geo = resolve_geometry(geometry)
    profile = build_sample_profile(table, formula, absorber, edge)

    e_plus = profile.edge_energy + REFERENCE_OFFSET_EV
    mu_a_plus = profile.absorber_count * float(
        table.mass_attenuation(profile.absorber_symbol, [e_plus], CrossSectionKind.PHOTO)[0]
    )
    if not np.isfinite(mu_a_plus) or mu_a_plus <= 0.0:
        raise InsufficientData(
            f"absorber attenuation at {e_plus:.1f} eV must be > 0, got {mu_a_plus}"
        )

    mu_f = weighted_mu_total_single(table, profile.composition, profile.fluorescence_energy)
    mu_b_plus = float(weighted_mu_background(table, profile, [e_plus])[0])

    beta = mu_f / mu_a_plus
    gamma_prime = mu_b_plus / mu_a_plus
    mu_background_norm = weighted_mu_background(table, profile, grid) / mu_a_plus

    logger.debug("Fluo %s: beta=%.4g gamma'=%.4g g=%.4g", formula, beta, gamma_prime, geo.ratio)

    return FluoParams(
        energies=readonly(grid),
        beta=beta,
        gamma_prime=gamma_prime,
        ratio=geo.ratio,
        mu_background_norm=readonly(mu_background_norm),
        edge_energy=profile.edge_energy,
        fluorescence_energy=profile.fluorescence_energy,
    )


def correct_mu(params: FluoParams, mu_norm: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """
    Apply the Fluo correction to normalized μ(E).

        μ_corr = μ_norm (β g + μ_b(E)/μ_a⁺) / (β g + γ' + 1 - μ_norm)

    Points where the denominator vanishes are returned unchanged.
    """
    mu = np.asarray(mu_norm, dtype=float)
    bg = params.mu_background_norm
    if mu.shape != bg.shape:
        raise InsufficientData(
            f"mu_norm has {mu.size} points but the energy grid has {bg.size}"
        )
    beta_g = params.beta * params.ratio
    numer = mu * (beta_g + bg)
    denom = (beta_g + params.gamma_prime + 1.0) - mu

    degenerate = np.abs(denom) < DEGENERATE_DENOMINATOR
    if np.any(degenerate):
        logger.warning(
            "Fluo denominator vanishes at %d point(s); passing them through",
            int(np.count_nonzero(degenerate)),
        )
    safe = np.where(degenerate, 1.0, denom)
    return np.where(degenerate, mu, numer / safe)
