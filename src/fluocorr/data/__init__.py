"""fluocorr data module: cross-section tables and formula parsing."""

from fluocorr.data.xray_tables import (
    CrossSectionKind,
    CrossSectionTable,
    EmissionLine,
    XrayDBTable,
    parse_formula,
)

__all__ = [
    "CrossSectionKind",
    "CrossSectionTable",
    "EmissionLine",
    "XrayDBTable",
    "parse_formula",
]
