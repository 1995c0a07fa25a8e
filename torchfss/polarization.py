"""Basis changes between dominant TE/TM modes and physical polarizations.

Modal amplitudes are power normalized, so the amplitude of a dominant mode
equals the projection of the full electric-field unit vector onto that
mode's polarization. For a plane wave with transverse wavevector along
``beta_hat`` and polar angle ``theta``, the TE unit vector is ``z x beta_hat``
and the TM unit vector has transverse part ``cos(theta)*beta_hat``; for any
vector ``u`` transverse to the propagation direction,
``u . e_TM = (u_xy . beta_hat) / cos(theta)``.

Linear polarizations follow Ludwig's third definition. Circular polarizations
follow the IEEE convention for ``exp(j*omega*t)`` time dependence.

Region 1 is the input half-space (GSM port 1), region 2 the output
half-space (port 2).
"""
from typing import Tuple

import numpy as np

from .constants import C_0
from .exceptions import CutoffError

HV = 'HV'
RL = 'RL'


def _k_ambient(result, region: int) -> float:
    k0 = 2 * np.pi * result.fghz * 1e9 / C_0
    eps, mu = (result.eps_in, result.mu_in) if region == 1 else (result.eps_out, result.mu_out)
    return k0 * np.sqrt(max((eps * mu).real, 0.0))


def theta_phi(result, region: int = 1) -> Tuple[float, float]:
    """Incidence angles (degrees) of the dominant wave in region 1 or 2.

    Angles in the output region follow from Snell's law with the real parts of
    the material parameters. At normal incidence ``phi`` is the steering
    ``phi`` when one was given, else zero.

    Raises:
        CutoffError: If the dominant mode does not propagate in that region.
    """
    bx, by = result.beta00
    bt = float(np.hypot(bx, by))
    k = _k_ambient(result, region)
    if bt >= k:
        raise CutoffError(f"Cut-off dominant mode in region {region}",
                          result.fghz, result.steering)
    theta = np.degrees(np.arcsin(bt / k))
    if bt == 0.0:
        phi = float(result.steering.get('phi', 0.0))
    else:
        phi = float(np.degrees(np.arctan2(by, bx)))
    return float(theta), phi


def hv_vectors(theta: float, phi: float) -> Tuple[np.ndarray, np.ndarray]:
    """Ludwig-3 unit vectors ``(h, v)`` for direction ``(theta, phi)`` in degrees."""
    th, ph = np.radians(theta), np.radians(phi)
    ct, st, cp, sp = np.cos(th), np.sin(th), np.cos(ph), np.sin(ph)
    theta_hat = np.array([ct * cp, ct * sp, -st])
    phi_hat = np.array([-sp, cp, 0.0])
    h = theta_hat * cp - phi_hat * sp
    v = theta_hat * sp + phi_hat * cp
    return h, v


def _mode_vectors(beta00) -> Tuple[np.ndarray, np.ndarray]:
    """Transverse TE (``z x beta_hat``) and TM (``beta_hat``) directions."""
    b = np.asarray(beta00, dtype=np.float64)
    bt = np.hypot(b[0], b[1])
    bhat = b / bt if bt > 0 else np.array([1.0, 0.0])
    return np.array([-bhat[1], bhat[0]]), bhat


def _basis_vectors(kind: str, theta: float, phi: float, sense: int):
    """Pair of (complex) polarization vectors of a wave; ``sense`` is +1 along
    the Ludwig-3 direction and -1 against it."""
    h, v = hv_vectors(theta, phi)
    if kind == HV:
        return h.astype(complex), v.astype(complex)
    if kind == RL:
        r = (h - 1j * sense * v) / np.sqrt(2)
        l = (h + 1j * sense * v) / np.sqrt(2)
        return r, l
    raise ValueError(f"Unknown polarization basis {kind!r}")


def source_matrix(region: int, kind: str, result) -> np.ndarray:
    """2x2 matrix mapping incident (H, V) or (R, L) amplitudes to (TE, TM) amplitudes.

    Args:
        region (int): 1 for incidence from region 1, 2 for incidence from region 2.
        kind (str): ``'HV'`` or ``'RL'``.
        result (Result): Analysis point.
    """
    theta, phi = theta_phi(result, region)
    if region == 1:
        e1, e2 = _basis_vectors(kind, theta, phi, +1)
    else:
        e1, e2 = _basis_vectors(kind, theta, phi + 180.0, -1)
    t_te, t_tm = _mode_vectors(result.beta00)
    ct = np.cos(np.radians(theta))
    mat = np.empty((2, 2), dtype=complex)
    for col, e in enumerate((e1, e2)):
        mat[0, col] = t_te @ e[:2]
        mat[1, col] = (t_tm @ e[:2]) / ct
    return mat


def observation_matrix(region: int, kind: str, result) -> np.ndarray:
    """2x2 matrix mapping outgoing (TE, TM) amplitudes to (H, V) or (R, L) amplitudes.

    Args:
        region (int): 1 for waves scattered into region 1, 2 for region 2.
        kind (str): ``'HV'`` or ``'RL'``.
        result (Result): Analysis point.
    """
    theta, phi = theta_phi(result, region)
    if region == 1:
        e1, e2 = _basis_vectors(kind, theta, phi + 180.0, -1)
    else:
        e1, e2 = _basis_vectors(kind, theta, phi, +1)
    t_te, t_tm = _mode_vectors(result.beta00)
    ct = np.cos(np.radians(theta))
    mat = np.empty((2, 2), dtype=complex)
    for row, e in enumerate((e1, e2)):
        mat[row, 0] = e[:2].conj() @ t_te
        mat[row, 1] = (e[:2].conj() @ t_tm) / ct
    return mat
