"""Module defines some constants used in the periodic-surface solver."""

import numpy as np
from enum import Enum, auto, unique

# Physical constants
EPS_0: float = 8.85418782e-12          # vacuum permittivity
MU_0: float = 1.25663706e-6            # vacuum permeability
C_0: float = 1 / np.sqrt(EPS_0 * MU_0)    # speed of light in vacuum
ETA_0: float = np.sqrt(MU_0 / EPS_0)      # vacuum impedance

# dB per neper of field attenuation
DB_PER_NEPER: float = 20.0 / np.log(10.0)

# Length unit conversion factors
lengthunit_dict: dict[str, float] = {
    'meter': 1.0,
    'm': 1.0,
    'cm': 1.0e-2,
    'mm': 1.0e-3,
    'um': 1.0e-6,
    'inch': 2.54e-2,
    'mil': 2.54e-5,
}


def length_factor(units: str) -> float:
    """Return the factor converting a length in ``units`` to meters."""
    try:
        return lengthunit_dict[units.lower()]
    except KeyError:
        raise ValueError(f"Unknown length unit '{units}'. "
                         f"Valid units are: {sorted(lengthunit_dict)}") from None


@unique
class Precision(Enum):
    SINGLE = auto()
    DOUBLE = auto()


@unique
class SheetClass(Enum):
    """Electrical class of a patterned sheet.

    IMPEDANCE sheets (``'J'``) are conductors whose unknown is an electric
    surface current. ADMITTANCE sheets (``'M'``) are apertures in a conductor
    whose unknown is the tangential electric field, i.e. a magnetic current.
    """
    IMPEDANCE = 'J'
    ADMITTANCE = 'M'


# Analysis defaults
DEFAULT_DBMIN: float = 30.0
DEFAULT_MAX_MODES: int = 400
DEFAULT_THIN_LAYER_DB: float = 10.0
DEFAULT_SMOOTHING_FRACTION: float = 0.5
DEFAULT_SPECTRAL_RADIUS: float = 24.0
DEFAULT_QUADRATURE_SUBDIVISIONS: int = 2
DEFAULT_FT_TOLERANCE: float = 1e-9
DEFAULT_CONDITION_LIMIT: float = 1e-13
