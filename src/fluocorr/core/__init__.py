"""fluocorr core module: sample profiles, attenuation sums and geometry."""

from fluocorr.core.geometry import (
    DEFAULT_GEOMETRY,
    ETOK,
    FluorescenceGeometry,
    energies_to_k,
)
from fluocorr.core.sample import SampleProfile, build_sample_profile

__all__ = [
    "DEFAULT_GEOMETRY",
    "ETOK",
    "FluorescenceGeometry",
    "SampleProfile",
    "build_sample_profile",
    "energies_to_k",
]
