"""RWG basis functions on a periodic unit-cell mesh and their Fourier transforms.

Each basis function lives on a pair of triangles sharing an edge. Interior
edges give ordinary RWG functions. Boundary edges that coincide after a
lattice translation are paired into periodic basis functions whose minus
triangle is expressed in translated coordinates, so current can flow
across the unit-cell boundary.

The transform convention is ``F_n(beta) = integral f_n(rho) exp(+j beta.rho) dA``,
matching Floquet fields that vary as ``exp(-j beta.rho)``.
"""
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
import torch

from .exceptions import ConfigurationError
from .sheets import Sheet

# Dunavant degree-5 rule on the reference triangle (barycentric, weights sum to 1)
_DUNAVANT_A1, _DUNAVANT_B1 = 0.059715871789770, 0.470142064105115
_DUNAVANT_A2, _DUNAVANT_B2 = 0.797426985353087, 0.101286507323456
_DUNAVANT_W = (0.225, 0.132394152788506, 0.125939180544827)


def triangle_quadrature(subdivisions: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """Composite 7-point rule on the reference triangle.

    The triangle is split ``subdivisions`` times into four congruent
    sub-triangles before the 7-point rule is applied to each piece.

    Returns:
        Barycentric coordinates ``(Q, 3)`` and weights ``(Q,)`` summing to one.
    """
    a1, b1, a2, b2 = _DUNAVANT_A1, _DUNAVANT_B1, _DUNAVANT_A2, _DUNAVANT_B2
    base = np.array([
        [1 / 3, 1 / 3, 1 / 3],
        [a1, b1, b1], [b1, a1, b1], [b1, b1, a1],
        [a2, b2, b2], [b2, a2, b2], [b2, b2, a2],
    ])
    wbase = np.array([_DUNAVANT_W[0]] + [_DUNAVANT_W[1]] * 3 + [_DUNAVANT_W[2]] * 3)

    tris = [np.eye(3)]
    for _ in range(subdivisions):
        split = []
        for v in tris:
            ab, bc, ca = (v[0] + v[1]) / 2, (v[1] + v[2]) / 2, (v[2] + v[0]) / 2
            split += [np.stack([v[0], ab, ca]), np.stack([ab, v[1], bc]),
                      np.stack([ca, bc, v[2]]), np.stack([ab, bc, ca])]
        tris = split
    bary = np.concatenate([base @ v for v in tris])
    weights = np.tile(wbase, len(tris)) / len(tris)
    return bary, weights


@dataclass
class RWGData:
    """Basis-function geometry of one sheet.

    Attributes:
        nbf (int): Number of basis functions.
        cell_area (float): Unit-cell area (square meters).
        edge_length (np.ndarray): ``(nbf,)`` common-edge lengths.
        tri (np.ndarray): ``(nbf, 2)`` mesh triangle of the plus and minus sides.
        free (np.ndarray): ``(nbf, 2, 2)`` free-vertex coordinates in each
            side's own (possibly translated) frame.
        shift (np.ndarray): ``(nbf, 2, 2)`` translation from the mesh frame to
            each side's frame; zero except for periodic minus sides.
        sign (np.ndarray): ``(nbf, 2)`` ``+1`` for plus sides, ``-1`` for minus.
        nperiodic (int): Number of basis functions crossing the cell boundary.
    """
    nbf: int
    cell_area: float
    edge_length: np.ndarray
    tri: np.ndarray
    free: np.ndarray
    shift: np.ndarray
    sign: np.ndarray
    nperiodic: int


def _triangle_edges(triangles: np.ndarray) -> Dict[Tuple[int, int], list]:
    edges: Dict[Tuple[int, int], list] = {}
    for it, t in enumerate(triangles):
        for k in range(3):
            a, b, c = t[k], t[(k + 1) % 3], t[(k + 2) % 3]
            edges.setdefault((min(a, b), max(a, b)), []).append((it, c))
    return edges


def setup_rwg(sheet: Sheet) -> RWGData:
    """Build the RWG basis for ``sheet``.

    Raises:
        ConfigurationError: If an edge is shared by more than two triangles, or
            a periodic edge pair would join a triangle to itself.
    """
    nodes = sheet.mesh.nodes
    triangles = sheet.mesh.triangles
    lattice = sheet.lattice
    edges = _triangle_edges(triangles)

    length, tri, free, shift, sign = [], [], [], [], []

    def add(key, plus, minus, t):
        a, b = key
        length.append(np.linalg.norm(nodes[a] - nodes[b]))
        tri.append((plus[0], minus[0]))
        free.append((nodes[plus[1]], nodes[minus[1]] + t))
        shift.append((np.zeros(2), t))
        sign.append((1.0, -1.0))

    boundary = []
    for key, owners in edges.items():
        if len(owners) == 2:
            add(key, owners[0], owners[1], np.zeros(2))
        elif len(owners) == 1:
            boundary.append((key, owners[0]))
        else:
            raise ConfigurationError(f"Mesh edge {key} is shared by {len(owners)} triangles")

    ninterior = len(length)
    if boundary:
        ends = np.array([[nodes[k[0]], nodes[k[1]]] for k, _ in boundary])
        mids = ends.mean(axis=1)
        lens = np.linalg.norm(ends[:, 0] - ends[:, 1], axis=1)
        tol = 1e-6 * lens.min()
        used = np.zeros(len(boundary), dtype=bool)
        translations = [i * lattice.s1 + j * lattice.s2
                        for i in (-1, 0, 1) for j in (-1, 0, 1) if (i, j) != (0, 0)]
        for ie in range(len(boundary)):
            if used[ie]:
                continue
            for t in translations:
                # minus triangle is moved by -t onto the plus triangle's edge
                dist = np.linalg.norm(mids - t - mids[ie], axis=1)
                dist[used] = np.inf
                dist[ie] = np.inf
                je = int(np.argmin(dist))
                if dist[je] > tol or abs(lens[je] - lens[ie]) > tol:
                    continue
                plus, minus = boundary[ie][1], boundary[je][1]
                if plus[0] == minus[0]:
                    raise ConfigurationError(
                        f"Periodic edge pair joins triangle {plus[0]} to itself; refine the mesh")
                add(boundary[ie][0], plus, minus, -t)
                used[ie] = used[je] = True
                break

    nbf = len(length)
    return RWGData(
        nbf=nbf,
        cell_area=lattice.area,
        edge_length=np.asarray(length, dtype=np.float64).reshape(nbf),
        tri=np.asarray(tri, dtype=np.int64).reshape(nbf, 2),
        free=np.asarray(free, dtype=np.float64).reshape(nbf, 2, 2),
        shift=np.asarray(shift, dtype=np.float64).reshape(nbf, 2, 2),
        sign=np.asarray(sign, dtype=np.float64).reshape(nbf, 2),
        nperiodic=nbf - ninterior,
    )


def _side_samples(sheet: Sheet, rwg: RWGData, subdivisions: int):
    """Quadrature points (side frames) and weighted basis values on every side."""
    bary, w = triangle_quadrature(subdivisions)
    verts = sheet.mesh.nodes[sheet.mesh.triangles[rwg.tri]]           # (nbf, 2, 3, 2)
    pts_mesh = np.einsum('qk,nskd->nsqd', bary, verts)                 # mesh frame
    pts = pts_mesh + rwg.shift[:, :, None, :]                          # side frame
    # area*w * l/(2A) * sign * (rho - free)
    scale = 0.5 * rwg.edge_length[:, None, None] * rwg.sign[:, :, None] * w[None, None, :]
    vals = scale[..., None] * (pts - rwg.free[:, :, None, :])
    return pts_mesh, pts, vals


def fourier_transforms(sheet: Sheet, rwg: RWGData, beta: torch.Tensor,
                       subdivisions: int = 2, tcomplex: torch.dtype = torch.complex128,
                       chunk: int = 64) -> torch.Tensor:
    """Fourier transforms of all basis functions at transverse wavevectors ``beta``.

    Args:
        sheet (Sheet): The sheet owning the mesh.
        rwg (RWGData): Its basis functions.
        beta (torch.Tensor): ``(K, 2)`` transverse wavevectors.
        subdivisions (int): Quadrature subdivision level.
        tcomplex (torch.dtype): Complex dtype of the result.
        chunk (int): Wavevectors per vectorized batch.

    Returns:
        torch.Tensor: ``(nbf, K, 2)`` vector transforms.
    """
    nk = beta.shape[0]
    if rwg.nbf == 0 or nk == 0:
        return torch.zeros((rwg.nbf, nk, 2), dtype=tcomplex, device=beta.device)
    _, pts, vals = _side_samples(sheet, rwg, subdivisions)
    rdtype = beta.dtype
    pts = torch.as_tensor(pts, dtype=rdtype, device=beta.device)
    vals = torch.as_tensor(vals, dtype=rdtype, device=beta.device).to(tcomplex)
    out = []
    for start in range(0, nk, chunk):
        b = beta[start:start + chunk]
        phase = torch.exp(1j * torch.einsum('nsqd,kd->nsqk', pts, b).to(tcomplex))
        out.append(torch.einsum('nsqd,nsqk->nkd', vals, phase))
    return torch.cat(out, dim=1)


def gram_matrix(sheet: Sheet, rwg: RWGData, beta00, tcomplex: torch.dtype = torch.complex128,
                device: str = 'cpu') -> torch.Tensor:
    """Overlap ``integral f_m . J_n`` of basis functions with Floquet-extended ones.

    Sides on the same mesh triangle overlap; a side seen through a lattice
    translation ``s`` carries the Floquet factor ``exp(-j beta00.s)``.
    """
    nbf = rwg.nbf
    if nbf == 0:
        return torch.zeros((0, 0), dtype=tcomplex, device=device)
    pts_mesh, _, vals = _side_samples(sheet, rwg, 0)
    ntri = len(sheet.mesh)
    area = sheet.mesh.areas
    # vals carry area*w once; divide one factor back out
    vals = vals / np.sqrt(area[rwg.tri])[:, :, None, None]
    phase = np.exp(-1j * (rwg.shift @ np.asarray(beta00, dtype=np.float64)))   # (nbf, 2)
    dense = np.zeros((nbf, ntri) + vals.shape[2:], dtype=np.complex128)
    for side in range(2):
        dense[np.arange(nbf), rwg.tri[:, side]] += vals[:, side] * phase[:, side, None, None]
    wq = triangle_quadrature(0)[1]
    dense = dense / np.sqrt(wq)[None, None, :, None]
    gram = np.einsum('mtqd,ntqd->mn', dense, dense.conj())
    return torch.as_tensor(gram, dtype=tcomplex, device=device)


class FourierTransformCache():
    """Memo table of basis-function transforms for one sheet solve.

    Wavevectors are keyed on a grid of spacing ``tolerance`` (rad/m); two
    wavevectors closer than that share one transform. The transform does not
    depend on the medium, so entries serve both bounding regions.
    """

    def __init__(self, sheet: Sheet, rwg: RWGData, tolerance: float,
                 subdivisions: int = 2, tcomplex: torch.dtype = torch.complex128):
        self.sheet = sheet
        self.rwg = rwg
        self.tolerance = tolerance
        self.subdivisions = subdivisions
        self.tcomplex = tcomplex
        self._table: Dict[Tuple[int, int], torch.Tensor] = {}
        self.hits = 0
        self.misses = 0

    def _key(self, b) -> Tuple[int, int]:
        return (int(round(float(b[0]) / self.tolerance)), int(round(float(b[1]) / self.tolerance)))

    def lookup(self, beta: torch.Tensor) -> torch.Tensor:
        """Transforms at ``beta`` ``(K, 2)``; returns ``(nbf, K, 2)``."""
        keys = [self._key(b) for b in beta.detach().cpu().numpy()]
        missing = {}
        for i, key in enumerate(keys):
            if key not in self._table and key not in missing:
                missing[key] = i
        if missing:
            rows = list(missing.values())
            computed = fourier_transforms(self.sheet, self.rwg, beta[rows],
                                          self.subdivisions, self.tcomplex)
            for col, key in enumerate(missing):
                self._table[key] = computed[:, col, :]
        self.misses += len(missing)
        self.hits += len(keys) - len(missing)
        if not keys:
            return torch.zeros((self.rwg.nbf, 0, 2), dtype=self.tcomplex, device=beta.device)
        return torch.stack([self._table[key] for key in keys], dim=1)
