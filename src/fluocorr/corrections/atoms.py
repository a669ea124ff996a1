"""
Atoms self-absorption correction (Ravel).

Self-absorption is treated as an amplitude factor and an extra Debye-Waller
term. The ratio of total to background-plus-fluorescence attenuation is
fitted as ln(σ) = ln(A) - 2 σ²_self k, and two further σ² terms account for
the normalization and the nitrogen-filled I0 chamber.

Reference: B. Ravel, Atoms / Artemis documentation (McMaster corrections)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from fluocorr.core.attenuation import (
    weighted_mu_absorber,
    weighted_mu_background,
    weighted_mu_total_single,
)
from fluocorr.core.geometry import as_energy_grid, energies_to_k, readonly
from fluocorr.core.regression import fit_ln_vs_x
from fluocorr.core.sample import build_sample_profile
from fluocorr.data.xray_tables import CrossSectionKind, CrossSectionTable
from fluocorr.errors import InsufficientData

logger = logging.getLogger(__name__)

# I0 chamber gas, N2
I0_GAS_ELEMENT = "N"
I0_GAS_COUNT = 2.0


def _sigma_squared_from_slope(k: np.ndarray, values: np.ndarray) -> float:
    _, slope = fit_ln_vs_x(k, values)
    return -slope / 2.0


@dataclass(frozen=True)
class AtomsResult:
    """
    Atoms correction on an energy grid.

    Attributes:
        energies: Energy grid (eV)
        k: Wavenumber grid (1/Å), 0 at and below the edge
        correction: σ(E) = (μ_f + μ_central + μ_bg) / (μ_f + μ_bg)
        amplitude: Amplitude factor A, multiply χ(k) by this
        sigma_squared_self: Self-absorption σ² (Å²)
        sigma_squared_norm: Normalization σ² (Å²)
        sigma_squared_i0: I0 chamber σ² (Å²)
        sigma_squared_net: Sum of the three σ² terms (Å²)
        edge_energy: Edge energy (eV)
        fluorescence_energy: Fluorescence line energy (eV)
    """

    energies: np.ndarray
    k: np.ndarray
    correction: np.ndarray
    amplitude: float
    sigma_squared_self: float
    sigma_squared_norm: float
    sigma_squared_i0: float
    sigma_squared_net: float
    edge_energy: float
    fluorescence_energy: float

    def correct_chi(self, chi: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """χ_corr(k) = A χ(k) exp(σ²_net k²)"""
        chi = np.asarray(chi, dtype=float)
        if chi.shape != self.k.shape:
            raise InsufficientData(
                f"chi has {chi.size} points but the energy grid has {self.k.size}"
            )
        return self.amplitude * chi * np.exp(self.sigma_squared_net * self.k * self.k)

    def to_dict(self) -> dict:
        return {
            "schema": "fluocorr.atoms.v1",
            "energies": self.energies.tolist(),
            "k": self.k.tolist(),
            "correction": self.correction.tolist(),
            "amplitude": self.amplitude,
            "sigma_squared_self": self.sigma_squared_self,
            "sigma_squared_norm": self.sigma_squared_norm,
            "sigma_squared_i0": self.sigma_squared_i0,
            "sigma_squared_net": self.sigma_squared_net,
            "edge_energy": self.edge_energy,
            "fluorescence_energy": self.fluorescence_energy,
        }


def atoms(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Union[Sequence[float], np.ndarray],
) -> AtomsResult:
    """
    Compute the Atoms correction.

    Args:
        table: Cross-section table
        formula: Sample chemical formula
        absorber: Absorbing element
        edge: Absorption edge
        energies: Energy grid in eV

    Returns:
        AtomsResult
    """
    grid = as_energy_grid(energies)
    profile = build_sample_profile(table, formula, absorber, edge)
    k = energies_to_k(grid, profile.edge_energy)
    above_edge = k > 0.0

    mu_f = weighted_mu_total_single(table, profile.composition, profile.fluorescence_energy)
    mu_bg = weighted_mu_background(table, profile, grid)
    mu_central = weighted_mu_absorber(table, profile, grid)

    denom = mu_f + mu_bg
    safe = np.where(denom > 0.0, denom, 1.0)
    correction = np.where(denom > 0.0, (mu_f + mu_central + mu_bg) / safe, 1.0)

    intercept, slope = fit_ln_vs_x(k, correction)
    amplitude = float(np.exp(intercept))
    s2_self = -slope / 2.0

    s2_norm = _sigma_squared_from_slope(k, np.where(above_edge, mu_central, 0.0))

    mu_i0 = I0_GAS_COUNT * table.mass_attenuation(I0_GAS_ELEMENT, grid, CrossSectionKind.PHOTO)
    s2_i0 = _sigma_squared_from_slope(k, np.where(above_edge, mu_i0, 0.0))

    s2_net = s2_self + s2_norm + s2_i0
    logger.debug(
        "Atoms %s: A=%.4f s2_self=%.3g s2_norm=%.3g s2_i0=%.3g",
        formula, amplitude, s2_self, s2_norm, s2_i0,
    )

    return AtomsResult(
        energies=readonly(grid),
        k=readonly(k),
        correction=readonly(correction),
        amplitude=amplitude,
        sigma_squared_self=s2_self,
        sigma_squared_norm=s2_norm,
        sigma_squared_i0=s2_i0,
        sigma_squared_net=s2_net,
        edge_energy=profile.edge_energy,
        fluorescence_energy=profile.fluorescence_energy,
    )
