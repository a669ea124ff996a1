"""
Tröger self-absorption correction for thick samples.

Divides χ(k) by 1 - s(k), with s(k) = μ_absorber(k) / α(k) and
α(k) = μ_total(k) + g μ_total(E_fluor). There is no thin-sample branch.

Reference: L. Tröger et al., Phys. Rev. B 46 (1992) 3283
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from fluocorr.core.attenuation import (
    weighted_mu_absorber,
    weighted_mu_total,
    weighted_mu_total_single,
)
from fluocorr.core.geometry import (
    FluorescenceGeometry,
    as_energy_grid,
    energies_to_k,
    readonly,
    resolve_geometry,
)
from fluocorr.core.sample import build_sample_profile
from fluocorr.data.xray_tables import CrossSectionTable
from fluocorr.errors import InsufficientData

logger = logging.getLogger(__name__)

# |1 - s| at or below this leaves χ unchanged
UNITY_TOLERANCE = 1e-10


@dataclass(frozen=True)
class TrogerResult:
    """
    Tröger correction on an energy grid.

    Attributes:
        energies: Energy grid (eV)
        k: Wavenumber grid (1/Å), 0 at and below the edge
        s: μ_absorber / α at each point
        correction_factor: 1 / (1 - s); multiply measured χ(k) by this
        edge_energy: Edge energy (eV)
        fluorescence_energy: Fluorescence line energy (eV)
    """

    energies: np.ndarray
    k: np.ndarray
    s: np.ndarray
    correction_factor: np.ndarray
    edge_energy: float
    fluorescence_energy: float

    def correct_chi(self, chi: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """Corrected χ(k) = χ_measured(k) × correction_factor."""
        chi = np.asarray(chi, dtype=float)
        if chi.shape != self.correction_factor.shape:
            raise InsufficientData(
                f"chi has {chi.size} points but the energy grid has {self.correction_factor.size}"
            )
        return chi * self.correction_factor

    def to_dict(self) -> dict:
        return {
            "schema": "fluocorr.troger.v1",
            "energies": self.energies.tolist(),
            "k": self.k.tolist(),
            "s": self.s.tolist(),
            "correction_factor": self.correction_factor.tolist(),
            "edge_energy": self.edge_energy,
            "fluorescence_energy": self.fluorescence_energy,
        }


def troger(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Union[Sequence[float], np.ndarray],
    geometry: Optional[FluorescenceGeometry] = None,
) -> TrogerResult:
    """
    Compute the Tröger self-absorption correction.

    Args:
        table: Cross-section table
        formula: Sample chemical formula
        absorber: Absorbing element
        edge: Absorption edge
        energies: Energy grid in eV
        geometry: Measurement geometry, 45°/45° when omitted

    Returns:
        TrogerResult
    """
    grid = as_energy_grid(energies)
    geo = resolve_geometry(geometry)
    profile = build_sample_profile(table, formula, absorber, edge)

    mu_t = weighted_mu_total(table, profile.composition, grid)
    mu_a = weighted_mu_absorber(table, profile, grid, subtract_pre_edge=True)
    mu_f = weighted_mu_total_single(table, profile.composition, profile.fluorescence_energy)

    alpha = mu_t + geo.ratio * mu_f
    s = np.divide(mu_a, alpha, out=np.zeros_like(alpha), where=alpha > 0.0)
    one_minus_s = 1.0 - s
    passthrough = np.abs(one_minus_s) <= UNITY_TOLERANCE
    if np.any(passthrough):
        logger.warning(
            "Troger: s is 1 at %d point(s); leaving them uncorrected",
            int(np.count_nonzero(passthrough)),
        )
    correction_factor = np.where(
        passthrough, 1.0, 1.0 / np.where(passthrough, 1.0, one_minus_s)
    )

    return TrogerResult(
        energies=readonly(grid),
        k=readonly(energies_to_k(grid, profile.edge_energy)),
        s=readonly(s),
        correction_factor=readonly(correction_factor),
        edge_energy=profile.edge_energy,
        fluorescence_energy=profile.fluorescence_energy,
    )
