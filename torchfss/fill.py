"""Interaction-matrix fill for a patterned sheet.

The matrix couples every pair of basis functions through the spectral
Green's function of the sheet's block:

    Z_mn = (1/A) * sum_p w_p * c_p * conj(v_p . F_m(beta_p)) * (v_p . F_n(beta_p))

where ``p`` runs over both polarizations of every fill harmonic, ``c_p`` is
the block's node impedance (conductors) or node admittance (apertures),
``v_p`` is the mode's field (or rotated field) direction and ``w_p`` a
raised-cosine taper that smooths the truncation of the Floquet sum.
"""
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import torch

from .layers import real_dtype


@dataclass
class FillHarmonics:
    """Harmonics summed in the interaction matrix and their taper weights."""
    mn: np.ndarray
    weight: np.ndarray
    smoothing: float
    radius: float

    def __len__(self):
        return len(self.mn)


def fill_harmonics(lattice, smoothing_fraction: float, spectral_radius: float) -> FillHarmonics:
    """Harmonics with ``|m*beta1 + n*beta2| < spectral_radius * u``.

    ``u = smoothing_fraction * max(|beta1|, |beta2|)``. Weights are one up to
    ``R - 4u`` and fall to zero at ``R`` along a raised cosine, so every
    propagating harmonic carries full weight.
    """
    u = smoothing_fraction * lattice.max_beta
    radius = spectral_radius * u
    mn, mags = lattice.harmonics_within(radius)
    start = max(radius - 4.0 * u, 0.0)
    span = radius - start
    weight = np.ones(len(mags))
    tail = mags > start
    weight[tail] = 0.5 * (1.0 + np.cos(np.pi * (mags[tail] - start) / span))
    return FillHarmonics(mn=mn, weight=weight, smoothing=u, radius=radius)


def fill_modes(fill: FillHarmonics, lattice, beta00, tcomplex: torch.dtype = torch.complex128,
               device: str = 'cpu') -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """Wavevectors of the fill harmonics and of their TE/TM modes.

    Returns:
        Harmonic wavevectors ``(H, 2)``, mode wavevectors ``(2H, 2)``, mode TE
        flags ``(2H,)`` and mode weights ``(2H,)``.
    """
    beta_h = lattice.transverse_wavevectors(fill.mn, beta00, dtype=real_dtype(tcomplex), device=device)
    beta_m = beta_h.repeat_interleave(2, dim=0)
    is_te = torch.arange(2 * len(fill), device=device) % 2 == 0
    weight = torch.as_tensor(np.repeat(fill.weight, 2), dtype=real_dtype(tcomplex), device=device)
    return beta_h, beta_m, is_te, weight


def project(transforms: torch.Tensor, vectors: torch.Tensor) -> torch.Tensor:
    """Components ``v_p . F_n(beta_p)``: ``(nbf, K, 2)`` x ``(K, 2)`` -> ``(nbf, K)``."""
    return (transforms * vectors.to(transforms.dtype).unsqueeze(0)).sum(dim=-1)


def interaction_matrix(proj: torch.Tensor, factor: torch.Tensor, area: float) -> torch.Tensor:
    """Sum ``conj(P) * factor * P^T / area`` over modes.

    Args:
        proj (torch.Tensor): ``(nbf, K)`` projected transforms.
        factor (torch.Tensor): ``(K,)`` Green's function factor times taper.
        area (float): Unit-cell area.

    Returns:
        torch.Tensor: ``(nbf, nbf)`` interaction matrix.
    """
    return (proj.conj() * factor.unsqueeze(0)) @ proj.T / area
