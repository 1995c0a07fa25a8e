"""Sheet-solve algorithms for impedance-type and admittance-type sheets.

Both sheet classes share one method-of-moments procedure and differ only in
a handful of choices, captured here with the Strategy pattern:

- ImpedanceSheetAlgorithm ('J'): unknown electric surface current on a
  conductor; the block without the sheet is the baseline, the Green's
  function factor is the node impedance, and the scattered correction is
  subtracted from the baseline.
- AdmittanceSheetAlgorithm ('M'): unknown aperture field (magnetic current)
  in a conducting plane; the block with a solid conductor at the sheet is
  the baseline, the Green's function factor is the node admittance, and the
  correction is added.

Keywords:
    method of moments, strategy pattern, sheet solver, RWG, Floquet, GSM
"""
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence

import numpy as np
import torch

from .blocks import BlockNetwork, block_network, blind_gsm
from .constants import SheetClass
from .exceptions import ConfigurationError
from .fill import FillHarmonics, fill_modes, interaction_matrix, project
from .layers import Layer, mode_harmonics, real_dtype, transverse_unit_vectors
from .results import GSM
from .rwg import FourierTransformCache, RWGData, gram_matrix
from .utils import lu_factor_checked


class SheetAlgorithm(ABC):
    """Abstract base class for the class-specific parts of a sheet solve.

    Note:
        Instances are stateless; use ``get_sheet_algorithm`` to obtain the
        algorithm for a sheet class.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name of the algorithm."""

    @property
    @abstractmethod
    def shorted(self) -> bool:
        """Whether the baseline block has a conducting plane at the sheet."""

    @property
    @abstractmethod
    def correction_sign(self) -> float:
        """Sign with which the scattered correction enters the GSM."""

    @abstractmethod
    def field_vectors(self, tvec: torch.Tensor) -> torch.Tensor:
        """Directions onto which basis transforms are projected."""

    @abstractmethod
    def green_factor(self, net: BlockNetwork) -> torch.Tensor:
        """Per-mode spectral Green's function factor at the sheet node."""

    @abstractmethod
    def source_scale(self, g: torch.Tensor, tau: torch.Tensor) -> torch.Tensor:
        """Excitation strength per unit incident amplitude.

        Args:
            g: Node impedance of each mode with nothing at the node.
            tau: Port-to-node transfer of each mode.
        """

    @abstractmethod
    def observation_scale(self, g: torch.Tensor, tau: torch.Tensor) -> torch.Tensor:
        """Scattered amplitude per unit projected unknown."""


class ImpedanceSheetAlgorithm(SheetAlgorithm):
    """Electric-current formulation for conducting patterns."""

    @property
    def name(self) -> str:
        return 'J'

    @property
    def shorted(self) -> bool:
        return False

    @property
    def correction_sign(self) -> float:
        return -1.0

    def field_vectors(self, tvec):
        return tvec

    def green_factor(self, net):
        return net.g

    def source_scale(self, g, tau):
        # open-circuit node voltage
        return 2.0 * g * tau

    def observation_scale(self, g, tau):
        return g * tau


class AdmittanceSheetAlgorithm(SheetAlgorithm):
    """Magnetic-current formulation for apertures in a conducting plane."""

    @property
    def name(self) -> str:
        return 'M'

    @property
    def shorted(self) -> bool:
        return True

    @property
    def correction_sign(self) -> float:
        return 1.0

    def field_vectors(self, tvec):
        # z x t
        return torch.stack([-tvec[..., 1], tvec[..., 0]], dim=-1)

    def green_factor(self, net):
        return net.y

    def source_scale(self, g, tau):
        # short-circuit node current, sign folded into correction_sign
        return 2.0 * tau

    def observation_scale(self, g, tau):
        return tau


_ALGORITHMS = {
    SheetClass.IMPEDANCE: ImpedanceSheetAlgorithm(),
    SheetClass.ADMITTANCE: AdmittanceSheetAlgorithm(),
}


def get_sheet_algorithm(sheet_class) -> SheetAlgorithm:
    """Algorithm for a ``SheetClass``.

    Raises:
        ConfigurationError: For anything that is not a known sheet class.
    """
    try:
        return _ALGORITHMS[sheet_class]
    except (KeyError, TypeError):
        raise ConfigurationError(f"Illegal sheet class {sheet_class!r}") from None


def assemble_interaction_matrix(sheet, cache: FourierTransformCache, layers: Sequence[Layer],
                                s: int, k0: float, beta00: Sequence[float], fill: FillHarmonics,
                                tcomplex: torch.dtype = torch.complex128, device: str = 'cpu',
                                timings: Optional[Dict[str, float]] = None) -> torch.Tensor:
    """Interaction matrix of ``sheet`` in its block, without surface resistance."""
    algorithm = get_sheet_algorithm(sheet.sheet_class)
    timings = timings if timings is not None else {}

    tic = time.perf_counter()
    beta_h, beta_f, te_f, weight_f = fill_modes(fill, sheet.lattice, beta00, tcomplex, device)
    transforms = cache.lookup(beta_h).repeat_interleave(2, dim=1)
    timings['transforms'] = timings.get('transforms', 0.0) + time.perf_counter() - tic

    tic = time.perf_counter()
    net_f = block_network(layers, s, k0, beta_f, te_f, tcomplex)
    tvec_f = transverse_unit_vectors(beta_f, te_f, 1e-9 * k0)
    proj_f = project(transforms, algorithm.field_vectors(tvec_f))
    zmat = interaction_matrix(proj_f, algorithm.green_factor(net_f) * weight_f, cache.rwg.cell_area)
    timings['fill'] = timings.get('fill', 0.0) + time.perf_counter() - tic
    return zmat


def solve_sheet_gsm(sheet, rwg: RWGData, layers: Sequence[Layer], s: int, k0: float,
                    beta00: Sequence[float], harmonics: np.ndarray, n_left: int, n_right: int,
                    fill: FillHarmonics, ft_tolerance: float, quadrature_subdivisions: int,
                    condition_limit: float, tcomplex: torch.dtype = torch.complex128,
                    device: str = 'cpu', context: Optional[Dict] = None,
                    timings: Optional[Dict[str, float]] = None) -> GSM:
    """GSM of a block holding one sheet, by the method of moments.

    Args:
        sheet (Sheet): The sheet.
        rwg (RWGData): Its basis functions.
        layers (Sequence[Layer]): Layers ``first..last`` of the block.
        s (int): Sheet junction relative to the block's first layer.
        k0 (float): Free-space wavenumber (rad/m).
        beta00 (Sequence[float]): Dominant transverse wavevector (rad/m).
        harmonics (np.ndarray): Global harmonic ordering.
        n_left, n_right (int): Mode counts of the bounding layers.
        fill (FillHarmonics): Harmonics summed in the interaction matrix.
        ft_tolerance (float): Absolute wavevector tolerance of the transform cache.
        quadrature_subdivisions (int): Subdivision level of the transform quadrature.
        condition_limit (float): Smallest acceptable pivot ratio.
        tcomplex (torch.dtype): Complex dtype.
        device (str): Torch device.
        context (Dict, optional): ``fghz``, ``steering``, ``sheet`` for error messages.
        timings (Dict[str, float], optional): Accumulates elapsed seconds per phase.

    Returns:
        GSM: Block GSM with ``n_left`` and ``n_right`` port modes, unshifted.

    Raises:
        SingularMatrixError: If the interaction matrix cannot be factored.
    """
    algorithm = get_sheet_algorithm(sheet.sheet_class)
    context = context or {}
    timings = timings if timings is not None else {}
    tfloat = real_dtype(tcomplex)

    nmax = max(n_left, n_right)
    mn, te = mode_harmonics(harmonics, nmax)
    beta = sheet.lattice.transverse_wavevectors(mn, beta00, dtype=tfloat, device=device)
    is_te = torch.as_tensor(te, device=device)
    net = block_network(layers, s, k0, beta, is_te, tcomplex)
    gsm = blind_gsm(net, n_left, n_right, shorted=algorithm.shorted)
    if sheet.is_inert or rwg.nbf == 0:
        return gsm

    area = rwg.cell_area
    cache = FourierTransformCache(sheet, rwg, ft_tolerance, quadrature_subdivisions, tcomplex)

    zmat = assemble_interaction_matrix(sheet, cache, layers, s, k0, beta00, fill,
                                       tcomplex, device, timings)
    tic = time.perf_counter()
    if sheet.rs:
        zmat = zmat + sheet.rs * gram_matrix(sheet, rwg, beta00, tcomplex, device)
    timings['fill'] = timings.get('fill', 0.0) + time.perf_counter() - tic

    tic = time.perf_counter()
    lu, pivots = lu_factor_checked(zmat, condition_limit, **context)
    timings['factor'] = timings.get('factor', 0.0) + time.perf_counter() - tic

    # cascade modes of both regions, region 1 first
    tic = time.perf_counter()
    beta_c = torch.cat([beta[:n_left], beta[:n_right]])
    te_c = torch.cat([is_te[:n_left], is_te[:n_right]])
    tau_c = torch.cat([net.tau_left[:n_left], net.tau_right[:n_right]])
    g_c = torch.cat([net.g[:n_left], net.g[:n_right]])
    proj_c = project(cache.lookup(beta_c),
                     algorithm.field_vectors(transverse_unit_vectors(beta_c, te_c, 1e-9 * k0)))
    timings['transforms'] = timings.get('transforms', 0.0) + time.perf_counter() - tic

    tic = time.perf_counter()
    rhs = proj_c.conj() * (algorithm.source_scale(g_c, tau_c) / np.sqrt(area)).unsqueeze(0)
    unknowns = torch.linalg.lu_solve(lu, pivots, rhs)
    timings['solve'] = timings.get('solve', 0.0) + time.perf_counter() - tic

    tic = time.perf_counter()
    scale = algorithm.correction_sign * algorithm.observation_scale(g_c, tau_c) / np.sqrt(area)
    delta = scale.unsqueeze(1) * (proj_c.T @ unknowns)
    nl = n_left
    gsm = GSM(S11=gsm.S11 + delta[:nl, :nl], S12=gsm.S12 + delta[:nl, nl:],
              S21=gsm.S21 + delta[nl:, :nl], S22=gsm.S22 + delta[nl:, nl:])
    timings['extract'] = timings.get('extract', 0.0) + time.perf_counter() - tic
    return gsm
