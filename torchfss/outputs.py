"""Derived quantities computed from analysis results.

Output requests name an extractor from a fixed catalog plus its arguments.
They are validated when the request list is built, and each one becomes an
``Outfun``: a label and a function of a ``Result``.

Catalog (names are case-insensitive):
    S11, S12, S21, S22 (m, n): complex GSM entry. Each also comes in ``MAG``,
        ``DB`` (10*log10|S|^2), ``ANG`` (degrees), ``REAL`` and ``IMAG`` forms,
        e.g. ``S21DB(H, H)``.
    DIPD21, DIPD12: differential insertion phase (degrees) between the TE and
        TM co-polarized dominant transmissions.
    DIL21, DIL12: differential insertion loss (dB) between the same pair.
    AR11DB, AR12DB, AR21DB, AR22DB (n): axial ratio (dB) of the wave scattered
        into region ``i`` for incident mode ``n`` from region ``j``.
    FGHZ, FMHZ, THETA, PHI, PSI1, PSI2: frequency and scan values.

Mode arguments are 1-based raw mode indices, ``TE``/``TM`` (raw 1 and 2), or
the polarization tags ``H``, ``V``, ``R``, ``L``.

Examples:
```python
outfuns = parse_outputs("fghz s21db(h,h) s11ang(te,te) ar21db(r)")
table = extract_result(results, outfuns)   # one row per result

outfuns = (OutputBuilder()
           .add('theta')
           .add('s21mag', 'v', 'v')
           .build())
```
"""
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple, Union

import numpy as np

from .archive import ResultArchive
from .polarization import HV, RL, observation_matrix, source_matrix
from .results import Result


class AddressKind(Enum):
    RAW = 'RAW'
    H = 'H'
    V = 'V'
    R = 'R'
    L = 'L'


_TAG_BASIS = {AddressKind.H: (HV, 0), AddressKind.V: (HV, 1),
              AddressKind.R: (RL, 0), AddressKind.L: (RL, 1)}


@dataclass(frozen=True)
class ModeAddress:
    """Row or column address into a GSM partition.

    Attributes:
        kind (AddressKind): ``RAW`` or one of the polarization tags.
        index (int): 1-based mode index, used only for ``RAW``.
    """
    kind: AddressKind
    index: int = 0

    def __post_init__(self):
        if self.kind is AddressKind.RAW and self.index < 1:
            raise ValueError(f"Raw mode indices are 1-based, got {self.index}")

    @classmethod
    def raw(cls, index: int) -> 'ModeAddress':
        return cls(AddressKind.RAW, int(index))

    @classmethod
    def parse(cls, token: Union[str, int, 'ModeAddress']) -> 'ModeAddress':
        """Address from an integer, ``'TE'``/``'TM'`` or a polarization tag."""
        if isinstance(token, ModeAddress):
            return token
        if isinstance(token, (int, np.integer)):
            return cls.raw(token)
        text = str(token).strip().upper()
        if text.isdigit():
            return cls.raw(int(text))
        if text == 'TE':
            return cls.raw(1)
        if text == 'TM':
            return cls.raw(2)
        if text in ('H', 'V', 'R', 'L'):
            return cls(AddressKind(text))
        raise ValueError(f"Illegal mode address {token!r}: use an index, TE, TM, H, V, R or L")

    @property
    def is_raw(self) -> bool:
        return self.kind is AddressKind.RAW

    @property
    def basis(self) -> str:
        return _TAG_BASIS[self.kind][0]

    @property
    def position(self) -> int:
        """Row/column of the dominant 2x2 block this address selects."""
        if self.is_raw:
            return self.index - 1
        return _TAG_BASIS[self.kind][1]

    def __str__(self) -> str:
        return str(self.index) if self.is_raw else self.kind.value


def getsijmn(i: int, j: int, m, n, result: Result) -> complex:
    """Entry ``(m, n)`` of partition ``S_ij`` of ``result.gsm``.

    Raw addresses read the modal GSM directly. A polarization tag on the
    column applies the source basis change of region ``j``; a tag on the row
    applies the observation basis change of region ``i``.
    """
    m, n = ModeAddress.parse(m), ModeAddress.parse(n)
    s = result.gsm.block(i, j)
    if m.is_raw and n.is_raw:
        if m.index > s.shape[0] or n.index > s.shape[1]:
            raise ValueError(f"Mode ({m.index}, {n.index}) outside S{i}{j} of shape {tuple(s.shape)}")
        return complex(s[m.index - 1, n.index - 1].item())
    for address in (m, n):
        if address.is_raw and address.index > 2:
            raise ValueError("A raw index combined with a polarization tag must address "
                             f"a dominant mode (1 or 2), got {address.index}")
    block = s[:2, :2].detach().cpu().numpy().astype(complex)
    if not n.is_raw:
        block = block @ source_matrix(j, n.basis, result)
    if not m.is_raw:
        block = observation_matrix(i, m.basis, result) @ block
    return complex(block[m.position, n.position])


def _db(z: complex) -> float:
    return float(10 * np.log10(abs(z) ** 2))


def _angle(z: complex) -> float:
    return float(np.degrees(np.angle(z)))


_S_FORMS: Dict[str, Callable[[complex], Union[complex, float]]] = {
    '': complex,
    'MAG': lambda z: float(abs(z)),
    'DB': _db,
    'ANG': _angle,
    'REAL': lambda z: float(z.real),
    'IMAG': lambda z: float(z.imag),
}


def axial_ratio_db(i: int, j: int, n, result: Result) -> float:
    """Axial ratio (dB) from the TE/TM components scattered into region ``i``.

    Linearly polarized waves give ``inf``.
    """
    te, tm = getsijmn(i, j, 1, n, result), getsijmn(i, j, 2, n, result)
    if tm == 0:
        return float('inf')
    jp = 1j * te / tm
    if jp == -1:
        return 0.0
    q = abs((1 - jp) / (1 + jp))
    if q > 1:
        q = 1 / q
    if q >= 1:
        return float('inf')
    return float(20 * np.log10((1 + q) / (1 - q)))


@dataclass(frozen=True)
class Outfun:
    """Labelled output function."""
    label: str
    func: Callable[[Result], Union[complex, float]]

    def __call__(self, result: Result):
        return self.func(result)


def _s_parameter(i: int, j: int, form: str, m: ModeAddress, n: ModeAddress) -> Outfun:
    if m.is_raw != n.is_raw and max(m.index, n.index) > 2:
        raise ValueError(f"S{i}{j}{form}({m},{n}): a raw index combined with a polarization "
                         "tag must address a dominant mode (1 or 2)")
    convert = _S_FORMS[form]
    return Outfun(f"S{i}{j}{form}({m},{n})",
                  lambda result: convert(getsijmn(i, j, m, n, result)))


def _ratio(i: int, j: int, result: Result) -> complex:
    return getsijmn(i, j, 1, 1, result) / getsijmn(i, j, 2, 2, result)


def _differential_phase(i: int, j: int) -> Outfun:
    return Outfun(f"DIPD{i}{j}", lambda result: _angle(_ratio(i, j, result)))


def _differential_loss(i: int, j: int) -> Outfun:
    return Outfun(f"DIL{i}{j}", lambda result: _db(_ratio(i, j, result)))


def _axial_ratio(i: int, j: int, n: ModeAddress) -> Outfun:
    return Outfun(f"AR{i}{j}DB({n})", lambda result: axial_ratio_db(i, j, n, result))


def _steering_value(key: str) -> Callable[[Result], float]:
    return lambda result: float(result.steering.get(key, np.nan))


_SCALARS: Dict[str, Callable[[Result], float]] = {
    'FGHZ': lambda result: float(result.fghz),
    'FMHZ': lambda result: float(result.fghz) * 1000,
    'THETA': _steering_value('theta'),
    'PHI': _steering_value('phi'),
    'PSI1': _steering_value('psi1'),
    'PSI2': _steering_value('psi2'),
}

_PORTS = ('11', '12', '21', '22')


def _catalog() -> Dict[str, Tuple[int, Callable[..., Outfun]]]:
    """Map of extractor name to (argument count, factory)."""
    catalog: Dict[str, Tuple[int, Callable[..., Outfun]]] = {}
    for ij in _PORTS:
        i, j = int(ij[0]), int(ij[1])
        for form in _S_FORMS:
            catalog[f"S{ij}{form}"] = (2, lambda m, n, i=i, j=j, form=form: _s_parameter(i, j, form, m, n))
        catalog[f"AR{ij}DB"] = (1, lambda n, i=i, j=j: _axial_ratio(i, j, n))
    for ij in ('21', '12'):
        i, j = int(ij[0]), int(ij[1])
        catalog[f"DIPD{ij}"] = (0, lambda i=i, j=j: _differential_phase(i, j))
        catalog[f"DIL{ij}"] = (0, lambda i=i, j=j: _differential_loss(i, j))
    for name, func in _SCALARS.items():
        catalog[name] = (0, lambda name=name, func=func: Outfun(name, func))
    return catalog


CATALOG = _catalog()


def make_outfun(name: str, *args) -> Outfun:
    """Validate one request and build its ``Outfun``.

    Raises:
        ValueError: For an unknown name, a wrong argument count or an
            illegal mode address.
    """
    key = str(name).strip().upper()
    if key not in CATALOG:
        raise ValueError(f"Unknown output {name!r}. Valid outputs: {', '.join(sorted(CATALOG))}")
    nargs, factory = CATALOG[key]
    if len(args) != nargs:
        raise ValueError(f"Output {key} takes {nargs} argument(s), got {len(args)}")
    return factory(*(ModeAddress.parse(a) for a in args))


class OutputBuilder:
    """Fluent builder for a list of output functions."""

    def __init__(self):
        self._outfuns: List[Outfun] = []

    def add(self, name: str, *args) -> 'OutputBuilder':
        self._outfuns.append(make_outfun(name, *args))
        return self

    def build(self) -> List[Outfun]:
        return list(self._outfuns)


_REQUEST = re.compile(r"([A-Za-z][A-Za-z0-9]*)\s*(?:\(([^()]*)\))?\s*,?\s*")


def parse_outputs(text: str) -> List[Outfun]:
    """Parse a request string such as ``"fghz s21db(h,h) ar21db(r)"``.

    Requests are separated by whitespace or commas.
    """
    text = text.strip()
    builder = OutputBuilder()
    pos = 0
    while pos < len(text):
        match = _REQUEST.match(text, pos)
        if match is None:
            raise ValueError(f"Cannot parse output request at {text[pos:]!r}")
        name, arglist = match.groups()
        args = [] if arglist is None else [a.strip() for a in arglist.split(',') if a.strip()]
        builder.add(name, *args)
        pos = match.end()
    return builder.build()


def extract_result(results: Union[Result, Sequence[Result]], outfuns: Sequence[Outfun]) -> np.ndarray:
    """Evaluate ``outfuns`` on each result; one row per result.

    The array is complex when any requested value is complex, else float.
    """
    if isinstance(results, Result):
        results = [results]
    rows = [[outfun(result) for outfun in outfuns] for result in results]
    is_complex = any(isinstance(v, complex) for row in rows for v in row)
    return np.array(rows, dtype=complex if is_complex else float).reshape(len(rows), len(outfuns))


def extract_result_file(archive, outfuns: Sequence[Outfun]) -> np.ndarray:
    """``extract_result`` over every entry of an archive (or archive path)."""
    if isinstance(archive, (str, Path)):
        archive = ResultArchive(archive)
    return extract_result(archive.read(), outfuns)
