"""Mode selection: how many Floquet modes each layer carries in the cascade.

Only layers that bound a Gblock take part in the cascade. Each of them keeps
whole rings of harmonics, in global order, as long as the modes of the ring
are not yet negligible after travelling across the layer at the highest
analysis frequency. Ambient and zero-width bounding layers keep every ring
that can propagate for some scan in the run.
"""
import logging
from typing import List, Sequence

import numpy as np

from .constants import DB_PER_NEPER
from .layers import Layer

logger = logging.getLogger(__name__)


def _ring_attenuation_db(mag: float, layer: Layer, k0max: float, beta00max: float) -> float:
    """Attenuation (dB) across ``layer`` of the least attenuated mode of a ring."""
    bt = max(mag - beta00max, 0.0)
    alpha = np.sqrt(complex(bt * bt - k0max * k0max * (layer.epsilon * layer.mu).real)).real
    return DB_PER_NEPER * alpha * layer.width


def choose_layer_modes(layers: Sequence[Layer], gblocks, lattice, k0max: float,
                       dbmin: float, beta00max: float = 0.0, max_modes: int = 400,
                       active: bool = True) -> List[int]:
    """Set ``mode_count`` on every layer and return the counts.

    Args:
        layers (Sequence[Layer]): The stack's layers.
        gblocks (Sequence[Gblock]): Block partition of the stack.
        lattice (Lattice): Stack lattice.
        k0max (float): Highest free-space wavenumber of the run (rad/m).
        dbmin (float): Attenuation (dB) beyond which a mode is dropped.
        beta00max (float): Largest dominant transverse wavenumber of the run.
        max_modes (int): Upper bound on modes per layer.
        active (bool): False when no sheet scatters into higher modes; every
            bounding layer then keeps only the two dominant modes.

    Returns:
        List[int]: Mode count per layer (zero for layers inside a block).
    """
    bounding = set()
    for gbl in gblocks:
        bounding.update((gbl.first, gbl.last))

    if active:
        harmonics, mags = lattice.ordered_harmonics(max(max_modes // 2, 1))
        ends = lattice.ring_ends(mags)
    n1 = layers[0].index
    ambient = {0, len(layers) - 1}
    counts = []
    for i, layer in enumerate(layers):
        if i not in bounding:
            count = 0
        elif not active:
            count = 2
        else:
            nharm = 1
            for end in ends:
                mag = mags[end - 1]
                if i in ambient or layer.width == 0.0:
                    keep = mag < k0max * (n1 + layer.index)
                else:
                    keep = _ring_attenuation_db(mag, layer, k0max, beta00max) < dbmin
                if not keep:
                    break
                nharm = end
            count = 2 * nharm
            if count > max_modes:
                capped = max([2] + [2 * e for e in ends if 2 * e <= max_modes])
                logger.warning(f"Layer {i}: {count} modes requested, capped at {capped}")
                count = capped
        layer.mode_count = count
        counts.append(count)
    return counts
