"""Gblock partition of a stack and the transmission-line network of a block.

A Gblock is a run of layers bounded by two mode-truncated layers that
contains at most one sheet junction. Electrically thin layers next to a
sheet are absorbed into that sheet's block, so the block's Green's function
accounts for them exactly through all Floquet harmonics. Every other junction
becomes a plain slab-interface block.

Inside a block each Floquet mode is an independent transmission line. The
network is solved with a reflection-coefficient recursion, which stays
bounded for strongly evanescent modes in thick layers.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import torch

from .constants import DB_PER_NEPER
from .exceptions import ConfigurationError
from .layers import Layer, modal_constants
from .results import GSM

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Gblock:
    """Block of layers ``first..last`` with an optional sheet junction.

    Junction ``j`` lies between layers ``j`` and ``j + 1``. The block covers
    junctions ``first .. last - 1``.
    """
    first: int
    last: int
    junction: Optional[int] = None

    @property
    def nlayers(self) -> int:
        return self.last - self.first + 1

    @property
    def sheet_offset(self) -> Optional[int]:
        """Junction position of the sheet relative to the first layer."""
        return None if self.junction is None else self.junction - self.first

    @property
    def junctions(self) -> range:
        return range(self.first, self.last)


def _is_thin(layer: Layer, k0min: float, beta_ring: float, thin_db: float) -> bool:
    if layer.width == 0.0:
        return True
    alpha = np.sqrt(complex(beta_ring ** 2 - k0min ** 2 * (layer.epsilon * layer.mu).real)).real
    return DB_PER_NEPER * alpha * layer.width < thin_db


def choose_gblocks(layers: Sequence[Layer], sheets: Dict[int, object], lattice,
                   k0min: float, thin_db: float) -> List[Gblock]:
    """Partition the junctions of the stack into Gblocks.

    Args:
        layers (Sequence[Layer]): Stack layers.
        sheets (Dict[int, Sheet]): Sheet at each sheet junction.
        lattice (Lattice): Stack lattice.
        k0min (float): Lowest free-space wavenumber of the run (rad/m).
        thin_db (float): Layers attenuating the first evanescent ring by less
            than this (dB) are absorbed into an adjacent sheet's block.

    Returns:
        List[Gblock]: Blocks in left-to-right order.

    Raises:
        ConfigurationError: When a thin layer separates two sheets, so that
            one block would have to hold both.
    """
    nlayer = len(layers)
    beta_ring = lattice.min_nonzero_beta if sheets else 0.0

    def thin(i):
        return 0 < i < nlayer - 1 and _is_thin(layers[i], k0min, beta_ring, thin_db)

    sheet_blocks = []
    for j in sorted(sheets):
        first, last = j, j + 1
        while thin(first):
            if first - 1 in sheets:
                raise ConfigurationError(
                    f"Sheets at junctions {first - 1} and {j} are separated only by "
                    f"electrically thin layer {first}")
            first -= 1
        while thin(last):
            if last in sheets:
                raise ConfigurationError(
                    f"Sheets at junctions {j} and {last} are separated only by "
                    f"electrically thin layer {last}")
            last += 1
        if (first, last) != (j, j + 1):
            logger.debug(f"Sheet at junction {j} absorbs thin layers: block spans layers {first}-{last}")
        sheet_blocks.append(Gblock(first, last, j))

    for a, b in zip(sheet_blocks, sheet_blocks[1:]):
        if a.last > b.first:
            raise ConfigurationError(
                f"Blocks of the sheets at junctions {a.junction} and {b.junction} overlap")

    covered = {j for gbl in sheet_blocks for j in gbl.junctions}
    slabs = [Gblock(j, j + 1, None) for j in range(nlayer - 1) if j not in covered]
    return sorted(sheet_blocks + slabs, key=lambda gbl: gbl.first)


def find_duplicate_blocks(gblocks: Sequence[Gblock], layers: Sequence[Layer],
                          sheets: Dict[int, object]) -> List[Optional[int]]:
    """Index of an earlier interchangeable block for each block, else ``None``.

    Two sheet blocks are interchangeable when their sheets have the same
    handle at the same relative junction, they hold the same number of
    layers, interior layers agree pairwise in width and material, bounding
    layers agree in material, and bounding mode counts match.
    """
    dup: List[Optional[int]] = [None] * len(gblocks)
    for k, b in enumerate(gblocks):
        if b.junction is None or sheets[b.junction].is_inert:
            continue
        for i in range(k):
            a = gblocks[i]
            if a.junction is None or dup[i] is not None:
                continue
            if _interchangeable(a, b, layers, sheets):
                dup[k] = i
                break
    return dup


def _interchangeable(a: Gblock, b: Gblock, layers, sheets) -> bool:
    if sheets[a.junction].handle != sheets[b.junction].handle:
        return False
    if a.nlayers != b.nlayers or a.sheet_offset != b.sheet_offset:
        return False
    for t in range(a.nlayers):
        la, lb = layers[a.first + t], layers[b.first + t]
        if t in (0, a.nlayers - 1):
            if not la.same_medium(lb) or la.mode_count != lb.mode_count:
                return False
        elif not la.same_layer(lb):
            return False
    return True


@dataclass
class BlockNetwork:
    """Per-mode transmission-line quantities of a block.

    Attributes:
        y_left, y_right: Port admittances in the bounding layers.
        y_minus, y_plus: Admittances seen from the sheet node looking left and right.
        tau_left, tau_right: Outgoing port amplitude per unit node voltage.
        open_left, open_right: Port reflection with nothing at the node.
        short_left, short_right: Port reflection with the node shorted.
    """
    y_left: torch.Tensor
    y_right: torch.Tensor
    y_minus: torch.Tensor
    y_plus: torch.Tensor
    tau_left: torch.Tensor
    tau_right: torch.Tensor
    open_left: torch.Tensor
    open_right: torch.Tensor
    short_left: torch.Tensor
    short_right: torch.Tensor

    @property
    def g(self) -> torch.Tensor:
        """Node impedance with nothing at the node."""
        return 1.0 / (self.y_minus + self.y_plus)

    @property
    def y(self) -> torch.Tensor:
        """Node admittance with nothing at the node."""
        return self.y_minus + self.y_plus


def _cross(y_ref, refl, y_new):
    """Re-reference a reflection coefficient to a new line admittance."""
    load = y_ref * (1 - refl)
    return (y_new * (1 + refl) - load) / (y_new * (1 + refl) + load)


def block_network(layers: Sequence[Layer], s: int, k0: float, beta: torch.Tensor,
                  is_te: torch.Tensor, tcomplex: torch.dtype = torch.complex128) -> BlockNetwork:
    """Solve the block's modal transmission lines for the modes ``(beta, is_te)``.

    Args:
        layers (Sequence[Layer]): Layers ``first..last`` of the block.
        s (int): Junction of the sheet node relative to the first layer.
        k0 (float): Free-space wavenumber (rad/m).
        beta (torch.Tensor): ``(K, 2)`` transverse wavevectors.
        is_te (torch.Tensor): ``(K,)`` polarization flags.
        tcomplex (torch.dtype): Complex dtype.

    Returns:
        BlockNetwork: Vectorized over the ``K`` modes.
    """
    n = len(layers)
    consts = [modal_constants(l.epsilon, l.mu, k0, beta, is_te, tcomplex) for l in layers]
    ys = [c[1] for c in consts]
    decay = [torch.exp(-c[0] * l.width) for c, l in zip(consts, layers)]

    def walk(y_ref, refl, order, track_voltage=True):
        v = torch.ones_like(refl)
        for i in order:
            refl = _cross(y_ref, refl, ys[i])
            y_ref = ys[i]
            near = refl * decay[i] * decay[i]
            if track_voltage:
                v = v * decay[i] * (1 + refl) / (1 + near)
            refl = near
        return y_ref, refl, v

    zero = torch.zeros_like(ys[0])
    short = -torch.ones_like(ys[0])
    left_inner = range(1, s + 1)
    right_inner = range(n - 2, s, -1)

    yl, rl, vl = walk(ys[0], zero, left_inner)
    yr, rr, vr = walk(ys[n - 1], zero, right_inner)
    y_minus = yl * (1 - rl) / (1 + rl)
    y_plus = yr * (1 - rr) / (1 + rr)

    y_ref, refl, _ = walk(ys[n - 1], zero, range(n - 2, 0, -1), False)
    open_left = _cross(y_ref, refl, ys[0])
    y_ref, refl, _ = walk(ys[0], zero, range(1, n - 1), False)
    open_right = _cross(y_ref, refl, ys[n - 1])

    refl = short if s == 0 else short * decay[s] * decay[s]
    y_ref, refl, _ = walk(ys[s], refl, range(s - 1, 0, -1), False)
    short_left = _cross(y_ref, refl, ys[0])
    refl = short if s + 1 == n - 1 else short * decay[s + 1] * decay[s + 1]
    y_ref, refl, _ = walk(ys[s + 1], refl, range(s + 2, n - 1), False)
    short_right = _cross(y_ref, refl, ys[n - 1])

    return BlockNetwork(
        y_left=ys[0], y_right=ys[n - 1], y_minus=y_minus, y_plus=y_plus,
        tau_left=torch.sqrt(ys[0]) * vl, tau_right=torch.sqrt(ys[n - 1]) * vr,
        open_left=open_left, open_right=open_right,
        short_left=short_left, short_right=short_right)


def diagonal_gsm(s11: torch.Tensor, s21: torch.Tensor, s22: torch.Tensor,
                 n_left: int, n_right: int) -> GSM:
    """Assemble a mode-diagonal GSM from per-mode coefficients.

    Modes beyond the smaller side's count reflect but do not transmit.
    """
    nmin = min(n_left, n_right)
    t = torch.zeros((n_right, n_left), dtype=s21.dtype, device=s21.device)
    idx = torch.arange(nmin, device=s21.device)
    t[idx, idx] = s21[:nmin]
    return GSM(S11=torch.diag(s11[:n_left]), S12=t.T.clone(), S21=t,
               S22=torch.diag(s22[:n_right]))


def blind_gsm(net: BlockNetwork, n_left: int, n_right: int, shorted: bool) -> GSM:
    """GSM of the block without sheet (open node) or with a conducting plane (shorted node)."""
    if shorted:
        return diagonal_gsm(net.short_left, torch.zeros_like(net.short_left),
                            net.short_right, n_left, n_right)
    s21 = 2 * net.g * net.tau_left * net.tau_right
    return diagonal_gsm(net.open_left, s21, net.open_right, n_left, n_right)


def slab_interface_gsm(left: Layer, right: Layer, k0: float, beta: torch.Tensor,
                       is_te: torch.Tensor, n_left: int, n_right: int,
                       tcomplex: torch.dtype = torch.complex128) -> GSM:
    """GSM of a plain junction between two layers.

    ``beta`` and ``is_te`` describe ``max(n_left, n_right)`` modes.
    """
    net = block_network([left, right], 0, k0, beta, is_te, tcomplex)
    return blind_gsm(net, n_left, n_right, shorted=False)
