"""Module for defining dielectric layers and their Floquet modal data.

A stack is an ordered list of layers with patterned sheets at some of the
junctions between them. Each layer is a homogeneous slab of (possibly lossy)
dielectric and magnetic material. The two outermost layers are the ambient
half-spaces; their width does not enter the analysis.

Modal data at an analysis point (propagation constants, modal admittances,
transverse unit vectors) is computed on demand and never stored on the layer,
so a prepared stack can be analyzed at several points concurrently.

Classes:
    Layer: Dielectric slab descriptor.

Functions:
    modal_constants: Propagation constants, admittances and unit vectors of
        a set of TE/TM modes in a homogeneous medium.
    mode_harmonics: Harmonic indices and polarizations of the first modes.
    dominant_cutoff: Check whether the dominant mode is evanescent.

Keywords:
    layers, Floquet modes, modal admittance, propagation constant, TE, TM
"""
from typing import Sequence, Tuple

import numpy as np
import torch

from .constants import ETA_0, length_factor
from .exceptions import ConfigurationError


class Layer():
    """Homogeneous dielectric slab.

    Complex material parameters follow the ``exp(j*omega*t)`` convention, so a
    lossy medium has a negative imaginary part:
    ``epsilon = epsr * (1 - 1j*tandel)`` and ``mu = mur * (1 - 1j*mtandel)``.

    Attributes:
        width (float): Physical width in meters.
        epsilon (complex): Relative permittivity.
        mu (complex): Relative permeability.
        mode_count (int): Number of cascade modes carried by the layer. Written
            once by mode selection; zero for layers inside a block.

    Examples:
    ```python
    substrate = Layer(width=0.5, epsr=2.2, tandel=0.0009, units='mm')
    air = Layer()
    ```

    Keywords:
        layer, dielectric, slab, permittivity, permeability, loss tangent
    """

    def __init__(self, width: float = 0.0, epsr: float = 1.0, tandel: float = 0.0,
                 mur: float = 1.0, mtandel: float = 0.0, units: str = 'mm'):
        if width < 0:
            raise ConfigurationError(f"Layer width must be non-negative, got {width}")
        if tandel < 0 or mtandel < 0:
            raise ConfigurationError("Loss tangents must be non-negative")
        if epsr == 0 or mur == 0:
            raise ConfigurationError("Relative permittivity and permeability must be nonzero")
        if epsr * tandel < 0 or mur * mtandel < 0:
            raise ConfigurationError(
                f"Layer medium must be passive, got epsr={epsr}, tandel={tandel}, "
                f"mur={mur}, mtandel={mtandel}")
        self.units = units
        self.user_width = float(width)
        self.width = float(width) * length_factor(units)
        self.epsr = float(epsr)
        self.tandel = float(tandel)
        self.mur = float(mur)
        self.mtandel = float(mtandel)
        self.mode_count = 0

    @property
    def epsilon(self) -> complex:
        return complex(self.epsr, -self.epsr * self.tandel)

    @property
    def mu(self) -> complex:
        return complex(self.mur, -self.mur * self.mtandel)

    @property
    def is_lossless(self) -> bool:
        return self.tandel == 0.0 and self.mtandel == 0.0

    @property
    def index(self) -> float:
        """Real refractive index ``sqrt(Re(epsilon*mu))`` used for ray geometry."""
        return float(np.sqrt(max((self.epsilon * self.mu).real, 0.0)))

    def same_medium(self, other: 'Layer') -> bool:
        """True when both layers have identical electrical parameters."""
        return (self.epsr, self.tandel, self.mur, self.mtandel) == \
            (other.epsr, other.tandel, other.mur, other.mtandel)

    def same_layer(self, other: 'Layer') -> bool:
        """True when both layers have identical electrical parameters and width."""
        return self.same_medium(other) and self.width == other.width

    def __repr__(self):
        return (f"Layer(width={self.user_width}, epsr={self.epsr}, tandel={self.tandel}, "
                f"mur={self.mur}, mtandel={self.mtandel}, units='{self.units}')")


def real_dtype(tcomplex: torch.dtype) -> torch.dtype:
    """Real dtype matching a complex dtype."""
    return torch.float64 if tcomplex == torch.complex128 else torch.float32


def modal_constants(epsilon: complex, mu: complex, k0: float, beta: torch.Tensor,
                    is_te: torch.Tensor, tcomplex: torch.dtype = torch.complex128
                    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Propagation constants, admittances and unit vectors of TE/TM modes.

    ``gamma = sqrt(|beta|^2 - k0^2*epsilon*mu)`` on the branch with a positive
    real part (or a non-negative imaginary part for propagating modes), so
    fields vary as ``exp(-gamma*|z|)`` away from a source.

    Args:
        epsilon (complex): Relative permittivity of the medium.
        mu (complex): Relative permeability of the medium.
        k0 (float): Free-space wavenumber (rad/m).
        beta (torch.Tensor): ``(K, 2)`` real transverse wavevectors.
        is_te (torch.Tensor): ``(K,)`` boolean, True for TE modes.
        tcomplex (torch.dtype): Complex dtype of the results.

    Returns:
        Tuple of ``gamma`` ``(K,)``, admittance ``y`` ``(K,)`` and transverse
        unit vectors ``tvec`` ``(K, 2)``.
    """
    bsq = (beta * beta).sum(dim=-1).to(tcomplex)
    gamma = torch.sqrt(bsq - (k0 * k0) * epsilon * mu)
    flip = (gamma.real < 0) | ((gamma.real == 0) & (gamma.imag < 0))
    gamma = torch.where(flip, -gamma, gamma)
    # Relax exact cutoff (Wood anomaly) to keep admittances finite
    gamma = torch.where(gamma == 0, torch.full_like(gamma, 1e-12 * k0), gamma)

    y_te = gamma / (1j * k0 * ETA_0 * mu)
    y_tm = (1j * k0 * epsilon / ETA_0) / gamma
    y = torch.where(is_te, y_te, y_tm)

    return gamma, y, transverse_unit_vectors(beta, is_te, 1e-9 * k0)


def transverse_unit_vectors(beta: torch.Tensor, is_te: torch.Tensor, tiny: float) -> torch.Tensor:
    """Transverse electric-field directions: ``z x beta_hat`` for TE, ``beta_hat`` for TM.

    Wavevectors shorter than ``tiny`` use ``x`` as ``beta_hat``.
    """
    bmag = torch.linalg.norm(beta, dim=-1, keepdim=True)
    default = torch.zeros_like(beta)
    default[..., 0] = 1.0
    bhat = torch.where(bmag > tiny, beta / torch.clamp(bmag, min=tiny), default)
    t_te = torch.stack([-bhat[..., 1], bhat[..., 0]], dim=-1)
    return torch.where(is_te.unsqueeze(-1), t_te, bhat)


def mode_harmonics(harmonics: np.ndarray, count: int) -> Tuple[np.ndarray, np.ndarray]:
    """Harmonic ``(m, n)`` and TE flag of each of the first ``count`` modes.

    Mode ``p`` uses harmonic ``p // 2``; even modes are TE, odd modes TM.
    """
    p = np.arange(count)
    return harmonics[p // 2], (p % 2 == 0)


def dominant_cutoff(layer: Layer, k0: float, beta00: Sequence[float]) -> bool:
    """True when the dominant mode of ``layer`` does not propagate."""
    bsq = float(np.dot(beta00, beta00))
    ksq = k0 * k0 * (layer.epsilon * layer.mu).real
    return bsq >= ksq
