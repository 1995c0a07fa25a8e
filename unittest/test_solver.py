"""Unit tests for Stack, Steering and the FSSSolver analysis loop."""

import tempfile
import unittest
from pathlib import Path

import numpy as np
import torch

from torchfss.archive import ResultArchive
from torchfss.exceptions import ConfigurationError, CutoffError, SingularMatrixError
from torchfss.lattice import Lattice
from torchfss.layers import Layer
from torchfss.sheets import rectangular_patch
from torchfss.solver import FSSSolver, SolverObserver, Stack, Steering, create_solver

CELL = ([10.0, 0.0], [0.0, 10.0])


def small_patch(**kwargs):
    return rectangular_patch(*CELL, lx=5, ly=5, nx=2, ny=2, **kwargs)


class EventRecorder(SolverObserver):

    def __init__(self):
        self.events = []

    def update(self, event_type, data):
        self.events.append(event_type)


class TestStack(unittest.TestCase):

    def test_junctions_and_layers(self):
        patch = small_patch()
        stack = Stack([Layer(), patch, Layer(width=1.0, epsr=2.2), Layer()])
        self.assertEqual(stack.nlayers, 3)
        self.assertEqual(list(stack.sheets), [0])
        self.assertTrue(stack.active)
        self.assertTrue(stack.lattice.is_close(patch.lattice))

    def test_layers_are_copied(self):
        sub = Layer(width=1.0, epsr=2.2)
        stack = Stack([Layer(), sub, sub, Layer()])
        self.assertIsNot(stack.layers[1], stack.layers[2])
        self.assertIsNot(stack.layers[1], sub)

    def test_handles(self):
        a, b = small_patch(), small_patch()
        stack = Stack([Layer(), a, Layer(width=1.0), a.translated(1.0, 0.0), Layer(width=1.0),
                       b, Layer()])
        handles = [stack.sheets[j].handle for j in sorted(stack.sheets)]
        self.assertEqual(handles, [1, 1, 2])
        # the caller's sheet is not modified
        self.assertIsNone(a.handle)

    def test_malformed_stacks(self):
        patch = small_patch()
        with self.assertRaises(ConfigurationError):
            Stack([Layer()])
        with self.assertRaises(ConfigurationError):
            Stack([patch, Layer(), Layer()])
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), patch])
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), patch, small_patch(), Layer()])
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), "air", Layer()])

    def test_inconsistent_lattices(self):
        other = rectangular_patch([12.0, 0.0], [0.0, 10.0], lx=5, ly=5, nx=2, ny=2)
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), small_patch(), Layer(width=1.0), other, Layer()])
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), small_patch(), Layer()], lattice=Lattice([8.0, 0.0], [0.0, 8.0], 'mm'))

    def test_lossy_ambient_rejected(self):
        with self.assertRaises(ConfigurationError):
            Stack([Layer(epsr=2.0, tandel=0.01), Layer()])
        with self.assertRaises(ConfigurationError):
            Stack([Layer(), Layer(mtandel=0.01)])


class TestSteering(unittest.TestCase):

    def test_order_and_points(self):
        steering = Steering({'phi': [0.0, 90.0], 'theta': [0.0, 10.0, 20.0]})
        self.assertEqual(steering.names, ('phi', 'theta'))
        self.assertEqual(len(steering), 6)
        points = list(steering.points())
        self.assertEqual(points[0], {'phi': 0.0, 'theta': 0.0})
        self.assertEqual(points[1], {'phi': 0.0, 'theta': 10.0})
        self.assertEqual(points[3], {'phi': 90.0, 'theta': 0.0})
        self.assertTrue(steering.is_angle)

    def test_aliases_and_scalars(self):
        steering = Steering({'ψ1': 0.5, 'psi2': [0.0, 1.0]})
        self.assertEqual(steering.names, ('psi1', 'psi2'))
        self.assertTrue(steering.is_phase)
        self.assertEqual(steering.as_dict(), {'psi1': [0.5], 'psi2': [0.0, 1.0]})
        self.assertEqual(Steering({'θ': 5.0, 'φ': 0.0}).names, ('theta', 'phi'))

    def test_invalid(self):
        for spec in [{'theta': 0.0},
                     {'theta': 0.0, 'psi1': 0.0},
                     {'theta': 0.0, 'phi': 0.0, 'psi1': 0.0},
                     {'theta': [], 'phi': 0.0},
                     {'theta': 90.0, 'phi': 0.0},
                     {'theta': -1.0, 'phi': 0.0},
                     {'theta': np.nan, 'phi': 0.0},
                     {'alpha': 0.0, 'phi': 0.0}]:
            with self.subTest(spec=spec):
                with self.assertRaises(ConfigurationError):
                    Steering(spec)


class TestFSSSolver(unittest.TestCase):

    def test_solve_requires_prepare(self):
        solver = create_solver([Layer(), Layer()])
        with self.assertRaises(RuntimeError):
            solver.solve_point(10.0, {'theta': 0.0, 'phi': 0.0})

    def test_invalid_frequencies(self):
        solver = create_solver([Layer(), Layer()])
        for freqs in ([], [0.0], [-1.0, 2.0], [np.inf]):
            with self.subTest(freqs=freqs):
                with self.assertRaises(ConfigurationError):
                    solver.prepare(freqs, {'theta': 0.0, 'phi': 0.0})

    def test_phase_steering_needs_lattice(self):
        solver = create_solver([Layer(), Layer(width=1.0, epsr=2.0), Layer()])
        with self.assertRaises(ConfigurationError):
            solver.prepare([10.0], {'psi1': 0.0, 'psi2': 0.0})
        solver = create_solver([Layer(), Layer(width=1.0, epsr=2.0), Layer()],
                               lattice=Lattice(*CELL, units='mm'))
        solver.prepare([10.0], {'psi1': 0.0, 'psi2': 0.0})
        result = solver.solve_point(10.0, {'psi1': 0.0, 'psi2': 0.0})
        self.assertEqual(result.gsm.S21.shape, (2, 2))

    def test_phase_and_angle_steering_agree(self):
        items = [Layer(), small_patch(), Layer(width=5.0, epsr=2.2), Layer()]
        theta = 20.0
        solver = create_solver(items)
        solver.prepare([10.0], {'theta': theta, 'phi': 0.0})
        by_angle = solver.solve_point(10.0, {'theta': theta, 'phi': 0.0})
        psi1 = by_angle.beta00[0] * 0.01
        solver.prepare([10.0], {'psi1': psi1, 'psi2': 0.0})
        by_phase = solver.solve_point(10.0, {'psi1': psi1, 'psi2': 0.0})
        np.testing.assert_allclose(by_phase.beta00, by_angle.beta00, rtol=1e-12)
        self.assertTrue(torch.allclose(by_phase.gsm.S21, by_angle.gsm.S21, atol=1e-10))
        self.assertTrue(torch.allclose(by_phase.gsm.S11, by_angle.gsm.S11, atol=1e-10))

    def test_cutoff_point(self):
        solver = create_solver([Layer(epsr=4.0), Layer()])
        solver.prepare([10.0], {'theta': [45.0], 'phi': [0.0]})
        with self.assertRaises(CutoffError) as ctx:
            solver.solve_point(10.0, {'theta': 45.0, 'phi': 0.0})
        self.assertEqual(ctx.exception.steering, {'theta': 45.0, 'phi': 0.0})

    def test_result_metadata(self):
        solver = create_solver([Layer(), small_patch(), Layer(epsr=2.0)])
        solver.prepare([12.0], {'theta': 30.0, 'phi': 90.0})
        result = solver.solve_point(12.0, {'theta': 30.0, 'phi': 90.0})
        k0 = solver._k0(12.0)
        np.testing.assert_allclose(result.beta00, (0.0, k0 * 0.5), atol=1e-9)
        self.assertEqual(result.fghz, 12.0)
        self.assertEqual(result.eps_out, complex(2.0, 0.0))
        np.testing.assert_allclose(result.beta1_in, solver.lattice.beta1)

    def test_ambient_widths_shift_reference_planes(self):
        steer = {'theta': 0.0, 'phi': 0.0}
        spacer = Layer(width=2.0, epsr=2.2)
        bare = create_solver([Layer(), small_patch(), spacer, Layer()])
        padded = create_solver([Layer(width=3.0), small_patch(), spacer, Layer(width=7.0)])
        for solver in (bare, padded):
            solver.prepare([10.0], steer)
        self.assertEqual([layer.mode_count for layer in padded.layers],
                         [layer.mode_count for layer in bare.layers])

        a = bare.solve_point(10.0, steer).gsm
        b = padded.solve_point(10.0, steer).gsm
        # both dominant modes propagate as exp(-j k0 z) in air at normal incidence
        k0 = bare._k0(10.0)
        p1, pn = np.exp(-1j * k0 * 3e-3), np.exp(-1j * k0 * 7e-3)
        dom = slice(0, 2)
        self.assertTrue(torch.allclose(b.S11[dom, dom], p1 * p1 * a.S11[dom, dom], atol=1e-10))
        self.assertTrue(torch.allclose(b.S21[dom, dom], pn * p1 * a.S21[dom, dom], atol=1e-10))
        self.assertTrue(torch.allclose(b.S12[dom, dom], p1 * pn * a.S12[dom, dom], atol=1e-10))
        self.assertTrue(torch.allclose(b.S22[dom, dom], pn * pn * a.S22[dom, dom], atol=1e-10))


class TestAnalyze(unittest.TestCase):

    def test_serial_order(self):
        solver = FSSSolver(Stack([Layer(), Layer(width=2.0, epsr=3.0), Layer()]))
        results = solver.analyze([9.0, 10.0], {'phi': [0.0, 90.0], 'theta': [0.0, 10.0]})
        self.assertEqual(len(results), 8)
        order = [(r.steering['phi'], r.steering['theta'], r.fghz) for r in results]
        self.assertEqual(order[:4], [(0.0, 0.0, 9.0), (0.0, 0.0, 10.0),
                                     (0.0, 10.0, 9.0), (0.0, 10.0, 10.0)])
        self.assertEqual(order[4], (90.0, 0.0, 9.0))
        self.assertEqual(list(results[0].steering), ['phi', 'theta'])

    def test_constructor_defaults(self):
        solver = FSSSolver(Stack([Layer(), Layer()]), frequencies=[10.0],
                           steering={'theta': [0.0, 10.0], 'phi': 0.0})
        self.assertEqual(len(solver.analyze()), 2)
        with self.assertRaises(ConfigurationError):
            FSSSolver(Stack([Layer(), Layer()])).analyze()

    def test_cutoff_points_are_skipped(self):
        solver = create_solver([Layer(epsr=4.0), Layer()])
        results = solver.analyze([10.0], {'theta': [0.0, 45.0], 'phi': 0.0})
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].steering['theta'], 0.0)
        self.assertEqual(solver.failures, [])

    def test_singular_points_are_recorded(self):
        solver = create_solver([Layer(), small_patch(), Layer()], condition_limit=1.0)
        results = solver.analyze([10.0, 11.0], {'theta': 0.0, 'phi': 0.0})
        self.assertEqual(results, [])
        self.assertEqual(len(solver.failures), 2)
        self.assertIsInstance(solver.failures[0], SingularMatrixError)
        self.assertEqual(solver.failures[0].fghz, 10.0)
        self.assertEqual(solver.failures[0].sheet, 1)
        with self.assertRaises(SingularMatrixError):
            solver.analyze([10.0], {'theta': 0.0, 'phi': 0.0}, raise_on_failure=True)

    def test_worker_threads_match_serial_run(self):
        items = [Layer(), small_patch(), Layer(width=5.0, epsr=2.2), Layer()]
        freqs, steering = [9.0, 10.0, 11.0], {'phi': 0.0, 'theta': [0.0, 20.0]}
        serial = create_solver(items).analyze(freqs, steering)
        threaded = create_solver(items, max_workers=3).analyze(freqs, steering)
        self.assertEqual(len(serial), len(threaded))
        for a, b in zip(serial, threaded):
            self.assertEqual((a.fghz, a.steering), (b.fghz, b.steering))
            self.assertTrue(torch.allclose(a.gsm.S21, b.gsm.S21, atol=1e-12))

    def test_archive_receives_completed_points(self):
        solver = create_solver([Layer(epsr=4.0), Layer()])
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "run"
            results = solver.analyze([10.0], {'theta': [0.0, 45.0, 10.0], 'phi': 0.0}, archive=path)
            archive = ResultArchive(path)
            self.assertEqual(archive.keys(), [0, 2])
            stored = archive.read()
            self.assertEqual([r.steering['theta'] for r in stored], [0.0, 10.0])
            self.assertTrue(torch.equal(stored[1].gsm.S21, results[1].gsm.S21))

    def test_open_archive_with_run_points_rejected(self):
        solver = create_solver([Layer(), Layer(width=2.0, epsr=3.0), Layer()])
        steering = {'theta': 0.0, 'phi': 0.0}
        with tempfile.TemporaryDirectory() as tmp:
            archive = ResultArchive.create(Path(tmp) / "run")
            first = solver.analyze([10.0], steering, archive=archive)
            recorder = EventRecorder()
            solver.add_observer(recorder)
            with self.assertRaises(ConfigurationError):
                solver.analyze([10.0, 11.0], steering, archive=archive)
            self.assertEqual(recorder.events, [])
            self.assertEqual(archive.keys(), [0])
            self.assertTrue(torch.equal(archive.read()[0].gsm.S21, first[0].gsm.S21))


if __name__ == '__main__':
    unittest.main()
