"""Patterned sheet descriptors and simple element meshes.

A ``Sheet`` is a periodic patterned conductor (impedance class ``'J'``) or a
periodic aperture in a conductor (admittance class ``'M'``) located at the
junction between two layers. Its geometry is one unit cell triangulated by a
``TriangleMesh``: for J sheets the mesh covers the metal, for M sheets it
covers the openings.

Sheets are identified by a token shared between a sheet and its translated
copies. A stack maps tokens to integer handles, and two blocks may share a
computed scattering matrix only when their sheets have the same handle.

Examples:
```python
from torchfss.sheets import rectangular_patch, nullsheet
patch = rectangular_patch(s1=[10, 0], s2=[0, 10], lx=8, ly=3, nx=8, ny=3, units='mm')
shifted = patch.translated(dx=2.5, dy=0.0)
shifted.handle_key == patch.handle_key  # True
```

Keywords:
    sheet, FSS, patch, strip, slot, aperture, mesh, triangulation
"""
from typing import Optional, Sequence, Union

import numpy as np

from .constants import SheetClass, length_factor
from .exceptions import ConfigurationError
from .lattice import Lattice


def parse_sheet_class(value: Union[str, SheetClass]) -> SheetClass:
    """Convert ``'J'``/``'M'`` (or a ``SheetClass``) to a ``SheetClass``."""
    if isinstance(value, SheetClass):
        return value
    if isinstance(value, str):
        for member in SheetClass:
            if value.upper() in (member.value, member.name):
                return member
    raise ConfigurationError(f"Illegal sheet class {value!r}; expected 'J' or 'M'")


class TriangleMesh():
    """Triangulation of the patterned part of one unit cell.

    Attributes:
        nodes (np.ndarray): ``(P, 2)`` node coordinates in meters.
        triangles (np.ndarray): ``(T, 3)`` node indices, counter-clockwise.
    """

    def __init__(self, nodes, triangles):
        self.nodes = np.asarray(nodes, dtype=np.float64).reshape(-1, 2)
        tri = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
        if tri.size and (tri.min() < 0 or tri.max() >= len(self.nodes)):
            raise ConfigurationError("Triangle references a node that does not exist")
        if tri.size:
            p = self.nodes[tri]
            cross = (p[:, 1, 0] - p[:, 0, 0]) * (p[:, 2, 1] - p[:, 0, 1]) - \
                (p[:, 1, 1] - p[:, 0, 1]) * (p[:, 2, 0] - p[:, 0, 0])
            scale = np.max(np.abs(self.nodes)) if len(self.nodes) else 1.0
            if np.any(np.abs(cross) <= 1e-14 * max(scale, 1e-30) ** 2):
                raise ConfigurationError("Mesh contains a degenerate triangle")
            cw = cross < 0
            tri[cw] = tri[cw][:, [0, 2, 1]]
        self.triangles = tri

    def __len__(self):
        return len(self.triangles)

    @property
    def areas(self) -> np.ndarray:
        p = self.nodes[self.triangles]
        return 0.5 * np.abs((p[:, 1, 0] - p[:, 0, 0]) * (p[:, 2, 1] - p[:, 0, 1]) -
                            (p[:, 1, 1] - p[:, 0, 1]) * (p[:, 2, 0] - p[:, 0, 0]))


class Sheet():
    """Periodic patterned sheet.

    Args:
        mesh (TriangleMesh): Unit-cell triangulation, coordinates in meters.
        s1, s2 (Sequence[float]): Lattice vectors in ``units``.
        sheet_class (str | SheetClass): ``'J'`` for conductors, ``'M'`` for apertures.
        style (str): Element style label; ``'NULL'`` marks an electromagnetically
            inert placeholder.
        dx, dy (float): Lateral offset of the pattern in ``units``.
        rs (float): Surface resistance in ohms (J sheets only).
        units (str): Length unit of ``s1``, ``s2``, ``dx`` and ``dy``.

    Raises:
        ConfigurationError: For an illegal class, negative resistance, or a
            resistive admittance-class sheet.
    """

    def __init__(self, mesh: TriangleMesh, s1: Sequence[float], s2: Sequence[float],
                 sheet_class: Union[str, SheetClass] = 'J', style: str = '',
                 dx: float = 0.0, dy: float = 0.0, rs: float = 0.0, units: str = 'mm'):
        self.sheet_class = parse_sheet_class(sheet_class)
        if rs < 0:
            raise ConfigurationError(f"Surface resistance must be non-negative, got {rs}")
        if rs != 0 and self.sheet_class is SheetClass.ADMITTANCE:
            raise ConfigurationError("Surface resistance is only supported on 'J' sheets")
        self.mesh = mesh
        self.lattice = Lattice(s1, s2, units)
        self.style = style
        self.units = units
        factor = length_factor(units)
        self.dx = float(dx) * factor
        self.dy = float(dy) * factor
        self.rs = float(rs)
        self.handle_key = object()
        self.handle: Optional[int] = None

    @property
    def is_inert(self) -> bool:
        return self.style.upper() == 'NULL'

    def translated(self, dx: float, dy: float) -> 'Sheet':
        """Copy of this sheet shifted by ``(dx, dy)`` (in the sheet's units).

        The copy shares the identity of the original, so stacks holding both
        may reuse one computed scattering matrix.
        """
        factor = length_factor(self.units)
        other = Sheet.__new__(Sheet)
        other.__dict__.update(self.__dict__)
        other.dx = float(dx) * factor
        other.dy = float(dy) * factor
        other.handle = None
        return other

    def __repr__(self):
        return (f"Sheet(class='{self.sheet_class.value}', style='{self.style}', "
                f"triangles={len(self.mesh)}, dx={self.dx}, dy={self.dy}, rs={self.rs})")


def _grid_mesh(u_len: float, v_len: float, nu: int, nv: int, u_dir: np.ndarray,
               center: np.ndarray) -> TriangleMesh:
    if nu < 1 or nv < 1:
        raise ConfigurationError("Element meshes need at least one cell in each direction")
    v_dir = np.array([-u_dir[1], u_dir[0]])
    u = np.linspace(-u_len / 2, u_len / 2, nu + 1)
    v = np.linspace(-v_len / 2, v_len / 2, nv + 1)
    uu, vv = np.meshgrid(u, v, indexing='ij')
    nodes = center + uu.reshape(-1, 1) * u_dir + vv.reshape(-1, 1) * v_dir

    def node(i, j):
        return i * (nv + 1) + j

    triangles = []
    for i in range(nu):
        for j in range(nv):
            a, b, c, d = node(i, j), node(i + 1, j), node(i + 1, j + 1), node(i, j + 1)
            triangles.append((a, b, c))
            triangles.append((a, c, d))
    return TriangleMesh(nodes, triangles)


def rectangular_patch(s1: Sequence[float], s2: Sequence[float], lx: float, ly: float,
                      nx: int, ny: int, center: Sequence[float] = (0.0, 0.0),
                      rotation: float = 0.0, units: str = 'mm', **kwargs) -> Sheet:
    """Rectangular patch (J) or rectangular slot (M) centered in the unit cell.

    Args:
        s1, s2: Lattice vectors in ``units``.
        lx, ly (float): Side lengths before rotation.
        nx, ny (int): Number of mesh cells along each side.
        center (Sequence[float]): Center of the rectangle.
        rotation (float): Counter-clockwise rotation in degrees.
        units (str): Length unit.
        **kwargs: Passed to ``Sheet`` (``sheet_class``, ``dx``, ``dy``, ``rs``).
    """
    factor = length_factor(units)
    ang = np.deg2rad(rotation)
    u_dir = np.array([np.cos(ang), np.sin(ang)])
    mesh = _grid_mesh(lx * factor, ly * factor, nx, ny, u_dir,
                      np.asarray(center, dtype=np.float64) * factor)
    return Sheet(mesh, s1, s2, style='rectangle', units=units, **kwargs)


def rectangular_strip(s1: Sequence[float], s2: Sequence[float], width: float,
                      nl: int, nw: int, units: str = 'mm', **kwargs) -> Sheet:
    """Strip running along ``s1`` and spanning the full period.

    The mesh ends coincide after translation by ``s1``, so current flows
    continuously from cell to cell through periodic basis functions.
    """
    factor = length_factor(units)
    s1m = np.asarray(s1, dtype=np.float64) * factor
    length = float(np.linalg.norm(s1m))
    mesh = _grid_mesh(length, width * factor, nl, nw, s1m / length, np.zeros(2))
    return Sheet(mesh, s1, s2, style='strip', units=units, **kwargs)


def nullsheet(s1: Sequence[float], s2: Sequence[float], units: str = 'mm') -> Sheet:
    """Electromagnetically inert sheet; keeps a junction in the stack without effect."""
    return Sheet(TriangleMesh(np.zeros((0, 2)), np.zeros((0, 3), dtype=np.int64)),
                 s1, s2, sheet_class='J', style='NULL', units=units)
