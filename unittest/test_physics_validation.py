"""
Physics-based validation tests for torchfss.

These tests check full-stack scattering matrices against closed-form
solutions and against physical laws that any correct discretization must
respect: energy conservation in lossless stacks, reciprocity, mirror
symmetry and invariance under lateral translation.
"""

import numpy as np
import pytest
import torch

from torchfss.constants import C_0, ETA_0, Precision
from torchfss.layers import Layer
from torchfss.sheets import nullsheet, rectangular_patch
from torchfss.solver import create_solver

CELL = ([10.0, 0.0], [0.0, 10.0])
K0_10GHZ = 2 * np.pi * 10e9 / C_0


def solve(items, fghz=10.0, theta=0.0, phi=0.0, **settings):
    """Prepare a solver for a single point and return it with the result."""
    solver = create_solver(items, **settings)
    solver.prepare([fghz], {'theta': [theta], 'phi': [phi]})
    return solver, solver.solve_point(fghz, {'theta': theta, 'phi': phi})


def dominant_smatrix(result):
    """Dominant 4x4 scattering matrix [[S11, S12], [S21, S22]] as numpy."""
    g = result.gsm
    top = torch.cat([g.S11[:2, :2], g.S12[:2, :2]], dim=1)
    bottom = torch.cat([g.S21[:2, :2], g.S22[:2, :2]], dim=1)
    return torch.cat([top, bottom], dim=0).numpy()


def assert_unitary(s, atol):
    np.testing.assert_allclose(s.conj().T @ s, np.eye(s.shape[0]), atol=atol)


class TestDielectricStacks:
    """Stacks without patterned sheets against closed-form solutions."""

    def test_identity_interface(self):
        _, result = solve([Layer(), Layer()], theta=30.0, phi=20.0)
        np.testing.assert_allclose(result.gsm.S21.numpy(), np.eye(2), atol=1e-14)
        np.testing.assert_allclose(result.gsm.S11.numpy(), np.zeros((2, 2)), atol=1e-14)

    def test_half_wave_slab_is_transparent(self):
        n = 2.0
        width = C_0 / (10e9 * 2 * n)
        _, result = solve([Layer(), Layer(width=width, epsr=n * n, units='m'), Layer()])
        assert np.abs(result.gsm.S11.numpy()).max() < 1e-9
        np.testing.assert_allclose(np.abs(np.diag(result.gsm.S21.numpy())), [1.0, 1.0], atol=1e-9)

    def test_slab_matches_airy_formula(self):
        n, width = 2.0, 3e-3
        _, result = solve([Layer(), Layer(width=width, epsr=n * n, units='m'), Layer()])
        r12 = (1 - n) / (1 + n)
        ph = np.exp(-2j * K0_10GHZ * n * width)
        r = r12 * (1 - ph) / (1 - r12 ** 2 * ph)
        t = (1 - r12 ** 2) * np.sqrt(ph) / (1 - r12 ** 2 * ph)
        np.testing.assert_allclose(np.abs(np.diag(result.gsm.S11.numpy())), [abs(r)] * 2, atol=1e-10)
        np.testing.assert_allclose(np.abs(np.diag(result.gsm.S21.numpy())), [abs(t)] * 2, atol=1e-10)

    def test_lossless_slab_conserves_energy_oblique(self):
        items = [Layer(), Layer(width=4.0, epsr=3.5), Layer(width=1.0, epsr=2.0), Layer()]
        _, result = solve(items, theta=40.0, phi=25.0)
        assert_unitary(dominant_smatrix(result), atol=1e-12)

    def test_lossy_slab_absorbs(self):
        items = [Layer(), Layer(width=4.0, epsr=3.5, tandel=0.05), Layer()]
        _, result = solve(items)
        s = dominant_smatrix(result)
        power = (np.abs(s[:, 0]) ** 2).sum()
        assert power < 1.0 - 1e-3

    def test_single_precision(self):
        items = [Layer(), Layer(width=3.0, epsr=2.0), Layer()]
        _, result = solve(items, theta=10.0, precision=Precision.SINGLE)
        assert result.gsm.S21.dtype == torch.complex64
        assert_unitary(dominant_smatrix(result).astype(np.complex128), atol=1e-5)

    def test_inert_sheet_is_transparent(self):
        _, with_sheet = solve([Layer(), nullsheet(*CELL), Layer(epsr=2.0)], theta=20.0, phi=30.0)
        _, without = solve([Layer(), Layer(epsr=2.0)], theta=20.0, phi=30.0)
        for name in ('S11', 'S12', 'S21', 'S22'):
            np.testing.assert_allclose(getattr(with_sheet.gsm, name).numpy(),
                                       getattr(without.gsm, name).numpy(), atol=1e-14)


class TestPatternedSheets:
    """Stacks with conducting patches and apertures."""

    def test_resistive_sheet(self):
        rs = 50.0
        sheet = rectangular_patch(*CELL, lx=10, ly=10, nx=4, ny=4, rs=rs)
        _, result = solve([Layer(), sheet, Layer()])
        t = 2 * rs / (ETA_0 + 2 * rs)
        np.testing.assert_allclose(result.gsm.S21.numpy(), t * np.eye(2), atol=5e-3)
        np.testing.assert_allclose(result.gsm.S11.numpy(), (t - 1) * np.eye(2), atol=5e-3)

    @pytest.mark.parametrize("sheet_class,theta,phi", [('J', 30.0, 45.0), ('M', 0.0, 0.0)])
    def test_lossless_sheet_conserves_energy(self, sheet_class, theta, phi):
        sheet = rectangular_patch(*CELL, lx=6, ly=3, nx=4, ny=2, rotation=20.0,
                                  sheet_class=sheet_class)
        items = [Layer(), sheet, Layer(width=5.0, epsr=2.2), Layer()]
        _, result = solve(items, theta=theta, phi=phi)
        assert_unitary(dominant_smatrix(result), atol=1e-8)

    def test_reciprocity_at_normal_incidence(self):
        sheet = rectangular_patch(*CELL, lx=7, ly=2, nx=7, ny=2, rotation=30.0)
        items = [Layer(), sheet, Layer(width=5.0, epsr=3.0), Layer()]
        _, result = solve(items)
        s = dominant_smatrix(result)
        np.testing.assert_allclose(s, s.T, atol=1e-9)

    def test_reciprocity_oblique_unequal_media(self):
        sheet = rectangular_patch(*CELL, lx=7, ly=2, nx=7, ny=2, rotation=30.0)
        items = [Layer(), sheet, Layer(width=3.0, epsr=3.0), Layer(epsr=2.0)]
        _, ahead = solve(items, theta=25.0, phi=40.0)
        _, behind = solve(items, theta=25.0, phi=220.0)
        dom = slice(0, 2)
        a, b = ahead.gsm, behind.gsm
        np.testing.assert_allclose(a.S21[dom, dom].numpy(), b.S12[dom, dom].numpy().T, atol=1e-8)
        np.testing.assert_allclose(a.S11[dom, dom].numpy(), b.S11[dom, dom].numpy().T, atol=1e-8)
        np.testing.assert_allclose(a.S22[dom, dom].numpy(), b.S22[dom, dom].numpy().T, atol=1e-8)

    def test_mirror_symmetric_block(self):
        sheet = rectangular_patch(*CELL, lx=6, ly=3, nx=4, ny=2, rotation=15.0)
        _, result = solve([Layer(), sheet, Layer()], theta=20.0, phi=30.0)
        np.testing.assert_allclose(result.gsm.S11.numpy(), result.gsm.S22.numpy(), atol=1e-12)
        np.testing.assert_allclose(result.gsm.S21.numpy(), result.gsm.S12.numpy(), atol=1e-12)

    def test_translated_sheet_matches_moved_mesh(self):
        centered = rectangular_patch(*CELL, lx=5, ly=5, nx=3, ny=3)
        moved = rectangular_patch(*CELL, lx=5, ly=5, nx=3, ny=3, center=(2.0, 1.0))
        substrate = Layer(width=5.0, epsr=2.2)
        _, shifted = solve([Layer(), centered.translated(2.0, 1.0), substrate, Layer()],
                           theta=25.0, phi=10.0)
        _, direct = solve([Layer(), moved, substrate, Layer()], theta=25.0, phi=10.0)
        for name in ('S11', 'S12', 'S21', 'S22'):
            np.testing.assert_allclose(getattr(shifted.gsm, name).numpy(),
                                       getattr(direct.gsm, name).numpy(), atol=1e-9)

    def test_duplicate_blocks_are_reused(self):
        patch = rectangular_patch(*CELL, lx=5, ly=5, nx=3, ny=3)
        sub = Layer(width=5.0, epsr=2.2)
        items = [Layer(), sub, patch, sub, patch.translated(2.5, 0.0), sub, Layer()]
        solver, reused = solve(items, theta=15.0)
        assert [layer.mode_count for layer in solver.layers] == [2, 10, 10, 10, 2]
        assert solver.duplicates == [None, None, 1, None]
        solver, fresh = solve(items, theta=15.0, deduplicate=False)
        assert solver.duplicates == [None] * 4
        for name in ('S11', 'S12', 'S21', 'S22'):
            np.testing.assert_allclose(getattr(reused.gsm, name).numpy(),
                                       getattr(fresh.gsm, name).numpy(), atol=1e-12)
