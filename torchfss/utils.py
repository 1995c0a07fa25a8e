"""Utility functions for the GSM cascade engine.

This module provides the operations used to assemble the scattering matrix
of a whole stack from the scattering matrices of its blocks:

- init_gsm: identity (reflectionless, unit-transmission) GSM
- cascade: Redheffer star product of two GSMs with rectangular blocks
- propagate_gsm: advance the right reference plane through a layer
- translate_gsm: phase correction for a laterally shifted sheet
- lu_factor_checked: LU factorization that rejects singular matrices

Keywords:
    Redheffer star product, cascade, generalized scattering matrix, propagation,
    translation, LU factorization
"""
from typing import Sequence, Tuple

import torch

from .exceptions import SingularMatrixError
from .results import GSM


def tsolve(A: torch.Tensor, B: torch.Tensor) -> torch.Tensor:
    """Solve ``A X = B`` without forming an explicit inverse."""
    return torch.linalg.solve(A, B)


def init_gsm(n: int, dtype: torch.dtype = torch.complex128, device: str = 'cpu') -> GSM:
    """Identity GSM for ``n`` modes.

    Represents a reference plane with no discontinuity: S11 = S22 = 0 and
    S12 = S21 = I.
    """
    eye = torch.eye(n, dtype=dtype, device=device)
    zero = torch.zeros((n, n), dtype=dtype, device=device)
    return GSM(S11=zero, S12=eye, S21=eye.clone(), S22=zero.clone())


def cascade(gsm_a: GSM, gsm_b: GSM) -> GSM:
    """Compute the Redheffer star product of two generalized scattering matrices.

    ``gsm_a`` lies on the left and ``gsm_b`` on the right; the right port of
    ``gsm_a`` and the left port of ``gsm_b`` share one modal basis of ``m``
    modes. The blocks may be rectangular.

    For C = A ⋆ B:
    - C11 = A11 + A12 (I - B11 A22)^(-1) B11 A21
    - C12 = A12 (I - B11 A22)^(-1) B12
    - C21 = B21 (I - A22 B11)^(-1) A21
    - C22 = B22 + B21 (I - A22 B11)^(-1) A22 B12

    The factor ``(I - A22 B11)^(-1)`` is obtained from ``(I - B11 A22)^(-1)``
    through the Woodbury identity so only one linear system is solved.

    Args:
        gsm_a (GSM): Left GSM, right port with ``m`` modes.
        gsm_b (GSM): Right GSM, left port with ``m`` modes.

    Returns:
        GSM: Combined scattering matrix.

    Raises:
        ValueError: If the shared port sizes differ.
    """
    m = gsm_a.n_right
    if gsm_b.n_left != m:
        raise ValueError(f"Cannot cascade GSMs with {m} and {gsm_b.n_left} interface modes")
    identity_mat = torch.eye(m, dtype=gsm_a.S22.dtype, device=gsm_a.S22.device)

    # Compute common terms
    inv_cycle_1 = identity_mat - gsm_b.S11 @ gsm_a.S22
    cycle_1_b11 = tsolve(inv_cycle_1, gsm_b.S11)
    cycle_1_b12 = tsolve(inv_cycle_1, gsm_b.S12)

    # woodbury matrix identity
    cycle_2 = identity_mat + gsm_a.S22 @ cycle_1_b11
    b21_cycle_2 = gsm_b.S21 @ cycle_2

    return GSM(
        S11=gsm_a.S11 + gsm_a.S12 @ cycle_1_b11 @ gsm_a.S21,
        S12=gsm_a.S12 @ cycle_1_b12,
        S21=b21_cycle_2 @ gsm_a.S21,
        S22=gsm_b.S22 + b21_cycle_2 @ gsm_a.S22 @ gsm_b.S12,
    )


def propagate_gsm(gsm: GSM, gamma: torch.Tensor, width: float) -> GSM:
    """Move the right reference plane of ``gsm`` a distance ``width`` to the right.

    Cascades the diagonal GSM of a homogeneous layer whose modes have
    propagation constants ``gamma`` (one per right-port mode).
    """
    if width == 0.0:
        return gsm
    p = torch.exp(-gamma * width)
    return GSM(S11=gsm.S11,
               S12=gsm.S12 * p.unsqueeze(0),
               S21=p.unsqueeze(1) * gsm.S21,
               S22=p.unsqueeze(1) * gsm.S22 * p.unsqueeze(0))


def propagate_gsm_left(gsm: GSM, gamma: torch.Tensor, width: float) -> GSM:
    """Move the left reference plane of ``gsm`` a distance ``width`` to the left.

    ``gamma`` holds one propagation constant per left-port mode.
    """
    if width == 0.0:
        return gsm
    p = torch.exp(-gamma * width)
    return GSM(S11=p.unsqueeze(1) * gsm.S11 * p.unsqueeze(0),
               S12=p.unsqueeze(1) * gsm.S12,
               S21=gsm.S21 * p.unsqueeze(0),
               S22=gsm.S22)


def translate_gsm(gsm: GSM, offset: Sequence[float], beta_left: torch.Tensor,
                  beta_right: torch.Tensor) -> GSM:
    """Phase-correct the GSM of a sheet shifted laterally by ``offset``.

    Entry ``S_ij[q, q']`` is multiplied by ``exp(j (beta_q - beta_q') . offset)``,
    where ``beta_q`` is the transverse wavevector of output mode ``q`` in
    region ``i`` and ``beta_q'`` that of input mode ``q'`` in region ``j``.
    """
    d = torch.as_tensor(offset, dtype=beta_left.dtype, device=beta_left.device)
    ph_left = torch.exp(1j * (beta_left @ d)).to(gsm.S11.dtype)
    ph_right = torch.exp(1j * (beta_right @ d)).to(gsm.S11.dtype)
    phases = {1: ph_left, 2: ph_right}

    def shift(s, i, j):
        return phases[i].unsqueeze(1) * s / phases[j].unsqueeze(0)

    return GSM(S11=shift(gsm.S11, 1, 1), S12=shift(gsm.S12, 1, 2),
               S21=shift(gsm.S21, 2, 1), S22=shift(gsm.S22, 2, 2))


def lu_factor_checked(matrix: torch.Tensor, condition_limit: float,
                      **context) -> Tuple[torch.Tensor, torch.Tensor]:
    """LU-factor ``matrix``, rejecting singular or badly scaled pivots.

    Args:
        matrix (torch.Tensor): Square complex matrix.
        condition_limit (float): Smallest acceptable ratio of the smallest to
            the largest pivot magnitude.
        **context: ``fghz``, ``steering`` and ``sheet`` forwarded to the error.

    Returns:
        Tuple of the packed LU factors and pivots for ``torch.linalg.lu_solve``.

    Raises:
        SingularMatrixError: When a zero pivot is met or the pivot ratio is
            below ``condition_limit``.
    """
    lu, pivots, info = torch.linalg.lu_factor_ex(matrix)
    if int(info) != 0 or not torch.isfinite(lu).all():
        raise SingularMatrixError("Interaction matrix is singular", **context)
    diag = torch.abs(torch.diagonal(lu))
    if diag.numel() == 0:
        ratio = 1.0
    else:
        ratio = float(diag.min() / diag.max()) if diag.max() > 0 else 0.0
    if ratio < condition_limit:
        raise SingularMatrixError(
            f"Interaction matrix is ill-conditioned (pivot ratio {ratio:.3e})", **context)
    return lu, pivots
