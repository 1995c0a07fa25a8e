"""Direct and reciprocal lattices of a doubly periodic unit cell.

The lattice is shared by every layer and sheet of a stack. Floquet harmonics
``(m, n)`` carry transverse wavevectors ``beta00 + m*beta1 + n*beta2`` and are
ordered globally by ``|m*beta1 + n*beta2|``. Harmonics of equal magnitude form
a ring, and truncation always happens on a ring boundary so that symmetric
harmonic pairs are kept or dropped together.
"""
from typing import List, Sequence, Tuple

import numpy as np
import torch

from .constants import length_factor
from .exceptions import ConfigurationError

# Relative tolerance for grouping harmonics into rings
RING_TOLERANCE = 1e-9


class Lattice():
    """Lattice vectors ``s1``, ``s2`` (meters) and their reciprocal vectors.

    The reciprocal vectors satisfy ``si . betaj = 2*pi*delta_ij``.

    Examples:
    ```python
    lat = Lattice([10.0, 0.0], [0.0, 10.0], units='mm')
    lat.area            # 1e-4 square meters
    lat.beta1           # array([628.3185..., 0.])
    ```
    """

    def __init__(self, s1: Sequence[float], s2: Sequence[float], units: str = 'meter'):
        factor = length_factor(units)
        self.s1 = np.asarray(s1, dtype=np.float64).reshape(2) * factor
        self.s2 = np.asarray(s2, dtype=np.float64).reshape(2) * factor
        cross = self.s1[0] * self.s2[1] - self.s1[1] * self.s2[0]
        scale = np.linalg.norm(self.s1) * np.linalg.norm(self.s2)
        if scale == 0.0 or abs(cross) <= 1e-12 * scale:
            raise ConfigurationError(f"Lattice vectors {list(s1)} and {list(s2)} are collinear")
        self.area = abs(cross)
        twopi_area = 2 * np.pi / cross
        self.beta1 = twopi_area * np.array([self.s2[1], -self.s2[0]])
        self.beta2 = twopi_area * np.array([-self.s1[1], self.s1[0]])

    def __repr__(self):
        return f"Lattice(s1={self.s1.tolist()}, s2={self.s2.tolist()})"

    def is_close(self, other: 'Lattice', rtol: float = 1e-9) -> bool:
        """True when both direct lattice vectors agree to ``rtol``."""
        scale = max(np.linalg.norm(self.s1), np.linalg.norm(self.s2))
        return (np.allclose(self.s1, other.s1, rtol=0.0, atol=rtol * scale) and
                np.allclose(self.s2, other.s2, rtol=0.0, atol=rtol * scale))

    @property
    def max_beta(self) -> float:
        """Larger of the two reciprocal vector magnitudes."""
        return float(max(np.linalg.norm(self.beta1), np.linalg.norm(self.beta2)))

    @property
    def min_nonzero_beta(self) -> float:
        """Magnitude of the first ring of nonzero harmonics."""
        mn, mags = self.harmonics_within(2.0 * self.max_beta + 1e-12)
        return float(mags[mags > RING_TOLERANCE * self.max_beta].min())

    def harmonics_within(self, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """All harmonics with ``|m*beta1 + n*beta2| < radius``.

        Returns:
            Tuple of the ``(K, 2)`` integer array of ``(m, n)`` pairs in global
            order and the ``(K,)`` array of their magnitudes.
        """
        mmax = int(np.floor(radius * np.linalg.norm(self.s1) / (2 * np.pi))) + 1
        nmax = int(np.floor(radius * np.linalg.norm(self.s2) / (2 * np.pi))) + 1
        m, n = np.meshgrid(np.arange(-mmax, mmax + 1), np.arange(-nmax, nmax + 1), indexing='ij')
        m = m.ravel()
        n = n.ravel()
        vecs = np.outer(m, self.beta1) + np.outer(n, self.beta2)
        mags = np.linalg.norm(vecs, axis=1)
        keep = mags < radius
        m, n, mags = m[keep], n[keep], mags[keep]

        order = np.argsort(mags, kind='stable')
        ring = self._ring_ids(mags[order])
        m, n, mags = m[order], n[order], mags[order]
        order = np.lexsort((n, m, ring))
        return np.stack([m[order], n[order]], axis=1), mags[order]

    def ordered_harmonics(self, count: int) -> Tuple[np.ndarray, np.ndarray]:
        """The first ``count`` harmonics, extended to complete the last ring."""
        cell = (2 * np.pi) ** 2 / self.area
        radius = np.sqrt(1.5 * max(count, 1) * cell / np.pi) + 2.0 * self.max_beta
        while True:
            mn, mags = self.harmonics_within(radius)
            if len(mn) > count:
                break
            radius *= 1.5
        ends = self.ring_ends(mags)
        stop = next(e for e in ends if e >= count)
        return mn[:stop], mags[:stop]

    def ring_ends(self, mags: np.ndarray) -> List[int]:
        """Exclusive end indices of each ring in an ordered magnitude array."""
        ring = self._ring_ids(mags)
        ends = [i + 1 for i in range(len(ring) - 1) if ring[i + 1] != ring[i]]
        ends.append(len(ring))
        return ends

    def _ring_ids(self, sorted_mags: np.ndarray) -> np.ndarray:
        tol = RING_TOLERANCE * self.max_beta
        if len(sorted_mags) == 0:
            return np.zeros(0, dtype=np.int64)
        steps = np.diff(sorted_mags) > tol
        return np.concatenate([[0], np.cumsum(steps)])

    def transverse_wavevectors(self, mn: np.ndarray, beta00: Sequence[float],
                               dtype: torch.dtype = torch.float64,
                               device: str = 'cpu') -> torch.Tensor:
        """Transverse wavevectors ``beta00 + m*beta1 + n*beta2`` as a ``(K, 2)`` tensor."""
        mn = np.asarray(mn, dtype=np.float64).reshape(-1, 2)
        vecs = np.asarray(beta00, dtype=np.float64).reshape(1, 2) + \
            np.outer(mn[:, 0], self.beta1) + np.outer(mn[:, 1], self.beta2)
        return torch.as_tensor(vecs, dtype=dtype, device=device)
