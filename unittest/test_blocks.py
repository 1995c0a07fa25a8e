"""Tests for layers, Gblock partition, mode selection and block networks."""

import numpy as np
import pytest
import torch

from torchfss.blocks import (Gblock, block_network, choose_gblocks, find_duplicate_blocks,
                             slab_interface_gsm)
from torchfss.constants import C_0, ETA_0
from torchfss.exceptions import ConfigurationError
from torchfss.lattice import Lattice
from torchfss.layers import Layer, dominant_cutoff, modal_constants, mode_harmonics
from torchfss.modes import choose_layer_modes
from torchfss.sheets import rectangular_patch

K0_10GHZ = 2 * np.pi * 10e9 / C_0
CELL = ([10.0, 0.0], [0.0, 10.0])


def normal_modes(count=2):
    beta = torch.zeros((count, 2), dtype=torch.float64)
    is_te = torch.arange(count) % 2 == 0
    return beta, is_te


class TestLayer:

    def test_complex_parameters(self):
        layer = Layer(width=1.0, epsr=2.2, tandel=0.01, mur=1.5, mtandel=0.02)
        assert layer.width == pytest.approx(1e-3)
        assert layer.epsilon == pytest.approx(complex(2.2, -0.022))
        assert layer.mu == pytest.approx(complex(1.5, -0.03))
        assert not layer.is_lossless
        assert Layer().is_lossless

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            Layer(width=-1.0)
        with pytest.raises(ConfigurationError):
            Layer(tandel=-0.1)
        with pytest.raises(ConfigurationError):
            Layer(epsr=0.0)
        # negative permittivity with a positive loss tangent would be active
        with pytest.raises(ConfigurationError):
            Layer(epsr=-2.0, tandel=0.01)
        with pytest.raises(ConfigurationError):
            Layer(mur=-1.0, mtandel=0.05)
        lossless = Layer(epsr=-2.0)
        assert lossless.epsilon == complex(-2.0, 0.0)

    def test_same_layer(self):
        a = Layer(width=1.0, epsr=2.2)
        assert a.same_layer(Layer(width=1.0, epsr=2.2))
        assert a.same_medium(Layer(width=2.0, epsr=2.2))
        assert not a.same_layer(Layer(width=2.0, epsr=2.2))

    def test_modal_constants_free_space(self):
        beta, is_te = normal_modes()
        gamma, y, tvec = modal_constants(1.0, 1.0, K0_10GHZ, beta, is_te)
        np.testing.assert_allclose(gamma.numpy(), [1j * K0_10GHZ] * 2)
        np.testing.assert_allclose(y.numpy(), [1 / ETA_0] * 2)
        # TE along y, TM along x at normal incidence
        np.testing.assert_allclose(tvec.numpy(), [[0.0, 1.0], [1.0, 0.0]])

    def test_evanescent_mode_decays(self):
        beta = torch.tensor([[3 * K0_10GHZ, 0.0]] * 2, dtype=torch.float64)
        gamma, y, _ = modal_constants(1.0, 1.0, K0_10GHZ, beta, torch.tensor([True, False]))
        assert torch.all(gamma.real > 0)
        assert abs(gamma[0].imag) < 1e-9 * K0_10GHZ
        # reactive admittances
        assert torch.all(torch.abs(y.real) < 1e-12 * torch.abs(y))

    def test_lossy_medium_branch(self):
        beta, is_te = normal_modes()
        gamma, _, _ = modal_constants(complex(4.0, -0.4), 1.0, K0_10GHZ, beta, is_te)
        assert torch.all(gamma.real > 0)
        assert torch.all(gamma.imag > 0)

    def test_mode_harmonics(self):
        harmonics = np.array([[0, 0], [1, 0], [-1, 0]])
        mn, te = mode_harmonics(harmonics, 5)
        assert mn.tolist() == [[0, 0], [0, 0], [1, 0], [1, 0], [-1, 0]]
        assert te.tolist() == [True, False, True, False, True]

    def test_dominant_cutoff(self):
        dense = Layer(epsr=4.0)
        assert not dominant_cutoff(dense, K0_10GHZ, (1.5 * K0_10GHZ, 0.0))
        assert dominant_cutoff(Layer(), K0_10GHZ, (1.5 * K0_10GHZ, 0.0))


class TestGblocks:

    def setup_method(self):
        self.lattice = Lattice(*CELL, units='mm')
        self.patch = rectangular_patch(*CELL, lx=5, ly=5, nx=2, ny=2)

    def test_slab_only_stack(self):
        layers = [Layer(), Layer(width=2.0, epsr=3.0), Layer()]
        blocks = choose_gblocks(layers, {}, None, K0_10GHZ, 10.0)
        assert blocks == [Gblock(0, 1), Gblock(1, 2)]

    def test_thin_layer_absorbed(self):
        layers = [Layer(), Layer(width=0.1, epsr=2.2), Layer(width=5.0, epsr=2.2), Layer()]
        blocks = choose_gblocks(layers, {1: self.patch}, self.lattice, K0_10GHZ, 10.0)
        assert blocks == [Gblock(0, 2, 1), Gblock(2, 3)]
        assert blocks[0].sheet_offset == 1
        assert list(blocks[0].junctions) == [0, 1]

    def test_thick_layers_kept(self):
        layers = [Layer(), Layer(width=5.0, epsr=2.2), Layer()]
        blocks = choose_gblocks(layers, {0: self.patch}, self.lattice, K0_10GHZ, 10.0)
        assert blocks == [Gblock(0, 1, 0), Gblock(1, 2)]

    def test_sheets_separated_by_thin_layer(self):
        layers = [Layer(), Layer(width=0.05, epsr=2.2), Layer()]
        with pytest.raises(ConfigurationError):
            choose_gblocks(layers, {0: self.patch, 1: self.patch}, self.lattice, K0_10GHZ, 10.0)

    def test_layer_mode_counts(self):
        layers = [Layer(), Layer(width=5.0, epsr=2.2), Layer()]
        blocks = choose_gblocks(layers, {0: self.patch}, self.lattice, K0_10GHZ, 10.0)
        counts = choose_layer_modes(layers, blocks, self.lattice, K0_10GHZ, 30.0)
        # first evanescent ring is attenuated ~24 dB across 5 mm, the second ~36 dB
        assert counts == [2, 10, 2]
        assert [layer.mode_count for layer in layers] == counts

    def test_ambient_width_keeps_mode_counts(self):
        layers = [Layer(width=5.0), Layer(width=5.0, epsr=2.2), Layer(width=20.0)]
        blocks = choose_gblocks(layers, {0: self.patch}, self.lattice, K0_10GHZ, 10.0)
        counts = choose_layer_modes(layers, blocks, self.lattice, K0_10GHZ, 30.0)
        assert counts == [2, 10, 2]

    def test_mode_cap(self):
        layers = [Layer(), Layer(width=5.0, epsr=2.2), Layer()]
        blocks = choose_gblocks(layers, {0: self.patch}, self.lattice, K0_10GHZ, 10.0)
        counts = choose_layer_modes(layers, blocks, self.lattice, K0_10GHZ, 30.0, max_modes=4)
        assert counts == [2, 2, 2]

    def test_inactive_stack_keeps_dominant_modes(self):
        layers = [Layer(), Layer(width=5.0, epsr=2.2), Layer()]
        blocks = choose_gblocks(layers, {}, None, K0_10GHZ, 10.0)
        counts = choose_layer_modes(layers, blocks, None, K0_10GHZ, 30.0, active=False)
        assert counts == [2, 2, 2]

    def test_duplicate_blocks(self):
        sub = Layer(width=5.0, epsr=2.2)
        layers = [Layer(), sub, Layer(width=5.0, epsr=2.2), Layer(width=5.0, epsr=2.2), Layer()]
        patch = rectangular_patch(*CELL, lx=5, ly=5, nx=2, ny=2)
        other = rectangular_patch(*CELL, lx=4, ly=4, nx=2, ny=2)
        patch.handle, other.handle = 1, 2
        blocks = [Gblock(0, 1), Gblock(1, 2, 1), Gblock(2, 3, 2), Gblock(3, 4)]
        for layer, count in zip(layers, [2, 10, 10, 10, 2]):
            layer.mode_count = count
        assert find_duplicate_blocks(blocks, layers, {1: patch, 2: patch}) == [None, None, 1, None]
        assert find_duplicate_blocks(blocks, layers, {1: patch, 2: other}) == [None] * 4
        layers[3].mode_count = 12
        assert find_duplicate_blocks(blocks, layers, {1: patch, 2: patch}) == [None] * 4


class TestBlockNetwork:

    def test_fresnel_interface(self):
        beta, is_te = normal_modes()
        n = 2.0
        gsm = slab_interface_gsm(Layer(), Layer(epsr=n * n), K0_10GHZ, beta, is_te, 2, 2)
        r = (1 - n) / (1 + n)
        np.testing.assert_allclose(torch.diagonal(gsm.S11).numpy(), [r, r], atol=1e-12)
        np.testing.assert_allclose(torch.diagonal(gsm.S22).numpy(), [-r, -r], atol=1e-12)
        t = 2 * np.sqrt(n) / (1 + n)
        np.testing.assert_allclose(torch.diagonal(gsm.S21).numpy(), [t, t], atol=1e-12)
        np.testing.assert_allclose(gsm.S12.numpy(), gsm.S21.numpy().T, atol=1e-12)

    def test_interface_conserves_power_oblique(self):
        k1 = K0_10GHZ
        beta = torch.tensor([[0.5 * k1, 0.0]] * 2, dtype=torch.float64)
        is_te = torch.tensor([True, False])
        gsm = slab_interface_gsm(Layer(), Layer(epsr=3.0), K0_10GHZ, beta, is_te, 2, 2)
        power = torch.abs(torch.diagonal(gsm.S11)) ** 2 + torch.abs(torch.diagonal(gsm.S21)) ** 2
        np.testing.assert_allclose(power.numpy(), [1.0, 1.0], atol=1e-12)

    def test_rectangular_interface(self):
        beta = torch.zeros((4, 2), dtype=torch.float64)
        is_te = torch.tensor([True, False, True, False])
        gsm = slab_interface_gsm(Layer(), Layer(epsr=2.0), K0_10GHZ, beta, is_te, 2, 4)
        assert gsm.S11.shape == (2, 2)
        assert gsm.S21.shape == (4, 2)
        assert gsm.S12.shape == (2, 4)
        assert gsm.S22.shape == (4, 4)
        assert torch.all(gsm.S21[2:] == 0)

    def test_open_node_matches_single_interface(self):
        beta, is_te = normal_modes()
        layers = [Layer(), Layer(epsr=4.0)]
        net = block_network(layers, 0, K0_10GHZ, beta, is_te)
        y1, y2 = 1 / ETA_0, 2 / ETA_0
        np.testing.assert_allclose(net.open_left.numpy(), [(y1 - y2) / (y1 + y2)] * 2, atol=1e-12)
        np.testing.assert_allclose(net.short_left.numpy(), [-1.0, -1.0], atol=1e-12)
        np.testing.assert_allclose(net.g.numpy(), [1 / (y1 + y2)] * 2, rtol=1e-12)
