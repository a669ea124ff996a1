"""Measurement geometry and energy-grid helpers for fluorescence XAS."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from fluocorr.errors import InsufficientData

# k (1/Å) = sqrt(ETOK * (E - E0)) with E in eV
ETOK = 0.2624682917


@dataclass(frozen=True)
class FluorescenceGeometry:
    """
    Incident and exit angles of a fluorescence measurement.

    Angles are measured from the sample surface, in degrees, and must lie
    in (0, 180) so both sines are positive. The default 45°/45° setup gives
    a geometry ratio of exactly 1.

    Attributes:
        theta_incident_deg: Incident beam angle (phi)
        theta_fluorescence_deg: Fluorescence exit angle (theta)
    """

    theta_incident_deg: float = 45.0
    theta_fluorescence_deg: float = 45.0

    def __post_init__(self):
        for name in ("theta_incident_deg", "theta_fluorescence_deg"):
            angle = getattr(self, name)
            if not math.isfinite(angle):
                raise InsufficientData(f"{name} must be finite, got {angle}")
            if not 0.0 < angle < 180.0:
                raise InsufficientData(f"{name} must be in (0, 180) degrees, got {angle}")

    @classmethod
    def from_radians(cls, phi_rad: float, theta_rad: float) -> "FluorescenceGeometry":
        """Build from incident (phi) and exit (theta) angles in radians."""
        if not math.isfinite(phi_rad) or not math.isfinite(theta_rad):
            raise InsufficientData("angles must be finite")
        return cls(
            theta_incident_deg=math.degrees(phi_rad),
            theta_fluorescence_deg=math.degrees(theta_rad),
        )

    @property
    def sin_incident(self) -> float:
        return math.sin(math.radians(self.theta_incident_deg))

    @property
    def sin_fluorescence(self) -> float:
        return math.sin(math.radians(self.theta_fluorescence_deg))

    @property
    def ratio(self) -> float:
        """Geometry ratio g = sin(incident) / sin(exit)."""
        return self.sin_incident / self.sin_fluorescence


DEFAULT_GEOMETRY = FluorescenceGeometry()


def resolve_geometry(geometry: Optional[FluorescenceGeometry]) -> FluorescenceGeometry:
    """Return the caller's geometry, or the 45°/45° default when absent."""
    return DEFAULT_GEOMETRY if geometry is None else geometry


def as_energy_grid(energies: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """
    Validate an energy grid (eV) and return it as a float array.

    Raises:
        InsufficientData: If the grid is empty or contains non-finite values
    """
    grid = np.asarray(energies, dtype=float).ravel()
    if grid.size == 0:
        raise InsufficientData("energy grid must not be empty")
    if not np.all(np.isfinite(grid)):
        raise InsufficientData("energy grid must contain only finite values")
    return grid


def energies_to_k(energies: Union[Sequence[float], np.ndarray], edge_energy: float) -> np.ndarray:
    """Photoelectron wavenumber for each energy; k = 0 at and below the edge."""
    energies = np.asarray(energies, dtype=float)
    above = energies > edge_energy
    k = np.zeros_like(energies)
    k[above] = np.sqrt((energies[above] - edge_energy) * ETOK)
    return k


def readonly(values) -> np.ndarray:
    """Float copy of ``values`` that cannot be modified in place."""
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr
