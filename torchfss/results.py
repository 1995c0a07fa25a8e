"""Module for scattering results of periodic multilayer structures.

This module defines the data structures handed out by the solver: the
generalized scattering matrix of a block or of the whole stack, and the
immutable ``Result`` record produced for every (frequency, scan) point.

Classes:
    GSM: Generalized scattering matrix with blocks S11, S12, S21, S22.
    Result: Full-stack GSM plus the scan and ambient-medium metadata needed
        to derive any output quantity later.

Examples:
```python
result = solver.solve_point(fghz=10.0, steering={'theta': 0.0, 'phi': 0.0})
s21 = result.gsm.block(2, 1)        # transmission from region 1 into region N
data = result.to_dict()             # plain tensors and floats, for archiving
same = Result.from_dict(data)
```

Keywords:
    generalized scattering matrix, GSM, S-parameters, result, archive, Floquet modes
"""

from dataclasses import dataclass
from typing import Dict, Tuple

import torch


@dataclass
class GSM:
    """Generalized scattering matrix between the modal bases of two regions.

    Port 1 is the left (region 1) side. ``S_ij`` maps incident amplitudes in
    region ``j`` to outgoing amplitudes in region ``i``.

    Attributes:
        S11 (torch.Tensor): Reflection in region 1, shape (n_left, n_left).
        S12 (torch.Tensor): Transmission from region 2 to 1, shape (n_left, n_right).
        S21 (torch.Tensor): Transmission from region 1 to 2, shape (n_right, n_left).
        S22 (torch.Tensor): Reflection in region 2, shape (n_right, n_right).
    """
    S11: torch.Tensor
    S12: torch.Tensor
    S21: torch.Tensor
    S22: torch.Tensor

    @property
    def n_left(self) -> int:
        return self.S11.shape[0]

    @property
    def n_right(self) -> int:
        return self.S22.shape[0]

    def block(self, i: int, j: int) -> torch.Tensor:
        """Sub-matrix ``S_ij`` for region indices ``i, j`` in {1, 2}."""
        if (i, j) not in ((1, 1), (1, 2), (2, 1), (2, 2)):
            raise ValueError(f"Region indices must be 1 or 2, got ({i}, {j})")
        return getattr(self, f"S{i}{j}")

    def clone(self) -> 'GSM':
        return GSM(S11=self.S11.clone(), S12=self.S12.clone(),
                   S21=self.S21.clone(), S22=self.S22.clone())

    def to_dict(self) -> Dict[str, torch.Tensor]:
        return {'S11': self.S11, 'S12': self.S12, 'S21': self.S21, 'S22': self.S22}

    @classmethod
    def from_dict(cls, data: Dict[str, torch.Tensor]) -> 'GSM':
        return cls(S11=data['S11'], S12=data['S12'], S21=data['S21'], S22=data['S22'])


def _pack_complex(z: complex) -> Tuple[float, float]:
    return (float(z.real), float(z.imag))


def _unpack_complex(pair) -> complex:
    return complex(pair[0], pair[1])


@dataclass(frozen=True)
class Result:
    """Immutable snapshot of one analysis point.

    Attributes:
        gsm (GSM): Full-stack generalized scattering matrix.
        steering (Dict[str, float]): Scan values, either ``theta``/``phi``
            (degrees) or ``psi1``/``psi2`` (radians).
        beta00 (Tuple[float, float]): Dominant transverse wavevector (rad/m).
        fghz (float): Frequency in GHz.
        eps_in, mu_in (complex): Relative material parameters of region 1.
        beta1_in, beta2_in (Tuple[float, float]): Reciprocal lattice vectors of region 1.
        eps_out, mu_out (complex): Relative material parameters of region N.
        beta1_out, beta2_out (Tuple[float, float]): Reciprocal lattice vectors of region N.
    """
    gsm: GSM
    steering: Dict[str, float]
    beta00: Tuple[float, float]
    fghz: float
    eps_in: complex
    mu_in: complex
    beta1_in: Tuple[float, float]
    beta2_in: Tuple[float, float]
    eps_out: complex
    mu_out: complex
    beta1_out: Tuple[float, float]
    beta2_out: Tuple[float, float]

    def to_dict(self) -> Dict:
        """Plain dictionary of tensors, floats and strings for archiving."""
        return {
            'gsm': self.gsm.to_dict(),
            'steering': {k: float(v) for k, v in self.steering.items()},
            'beta00': [float(b) for b in self.beta00],
            'fghz': float(self.fghz),
            'eps_in': _pack_complex(self.eps_in),
            'mu_in': _pack_complex(self.mu_in),
            'beta1_in': [float(b) for b in self.beta1_in],
            'beta2_in': [float(b) for b in self.beta2_in],
            'eps_out': _pack_complex(self.eps_out),
            'mu_out': _pack_complex(self.mu_out),
            'beta1_out': [float(b) for b in self.beta1_out],
            'beta2_out': [float(b) for b in self.beta2_out],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Result':
        """Rebuild a ``Result`` from ``to_dict`` output."""
        return cls(
            gsm=GSM.from_dict(data['gsm']),
            steering={k: float(v) for k, v in data['steering'].items()},
            beta00=tuple(float(b) for b in data['beta00']),
            fghz=float(data['fghz']),
            eps_in=_unpack_complex(data['eps_in']),
            mu_in=_unpack_complex(data['mu_in']),
            beta1_in=tuple(float(b) for b in data['beta1_in']),
            beta2_in=tuple(float(b) for b in data['beta2_in']),
            eps_out=_unpack_complex(data['eps_out']),
            mu_out=_unpack_complex(data['mu_out']),
            beta1_out=tuple(float(b) for b in data['beta1_out']),
            beta2_out=tuple(float(b) for b in data['beta2_out']),
        )
