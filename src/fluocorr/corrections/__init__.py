"""fluocorr corrections module."""

from fluocorr.corrections.ameyanagi import (
    AmeyanagiSettings,
    AmeyanagiSuppressionResult,
    PelletMassDiameter,
    ThicknessCm,
    ameyanagi_suppression_exact,
)
from fluocorr.corrections.atoms import AtomsResult, atoms
from fluocorr.corrections.booth import (
    BoothResult,
    BoothSuppressionResult,
    booth,
    booth_suppression_reference,
)
from fluocorr.corrections.fluo import FluoParams, correct_mu, fluo_params
from fluocorr.corrections.troger import TrogerResult, troger

__all__ = [
    'AmeyanagiSettings',
    'AmeyanagiSuppressionResult',
    'AtomsResult',
    'BoothResult',
    'BoothSuppressionResult',
    'FluoParams',
    'PelletMassDiameter',
    'ThicknessCm',
    'TrogerResult',
    'ameyanagi_suppression_exact',
    'atoms',
    'booth',
    'booth_suppression_reference',
    'correct_mu',
    'fluo_params',
    'troger',
]
