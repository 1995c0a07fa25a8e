import json
import logging
import tempfile
import unittest
from pathlib import Path

import numpy as np

from torchfss.builder import AnalysisConfig, SolverBuilder
from torchfss.constants import Precision, SheetClass
from torchfss.exceptions import ConfigurationError
from torchfss.layers import Layer
from torchfss.logger import LOGGER_NAME
from torchfss.sheets import rectangular_patch
from torchfss.solver import FSSSolver, get_solver_builder

CELL = ([10.0, 0.0], [0.0, 10.0])


class TestSolverBuilder(unittest.TestCase):
    """Test the SolverBuilder class."""

    def setUp(self):
        self.patch = rectangular_patch(*CELL, lx=5, ly=5, nx=2, ny=2)
        self.config = {
            "units": "mm",
            "precision": "single",
            "frequencies": [9.0, 10.0],
            "steering": {"phi": 0.0, "theta": [0.0, 20.0]},
            "dbmin": 40,
            "max_workers": 2,
            "layers": [
                {"type": "layer"},
                {"type": "sheet", "element": "patch", "class": "M", "s1": CELL[0],
                 "s2": CELL[1], "lx": 6, "ly": 6, "nx": 3, "ny": 3},
                {"type": "layer", "width": 1.0, "epsr": 2.2},
                {"type": "layer"},
            ],
        }

    def test_fluent_build(self):
        solver = (get_solver_builder()
                  .with_layer(Layer())
                  .with_sheet(self.patch)
                  .with_layer(Layer(width=1.0, epsr=2.2))
                  .with_layer(Layer())
                  .with_dbmin(40)
                  .with_max_modes(50)
                  .with_precision('double')
                  .with_frequencies(10.0)
                  .with_steering({'theta': 0.0, 'phi': 0.0})
                  .build())
        self.assertIsInstance(solver, FSSSolver)
        self.assertEqual(solver.config.dbmin, 40.0)
        self.assertEqual(solver.config.max_modes, 50)
        self.assertEqual(solver.config.precision, Precision.DOUBLE)
        self.assertEqual(solver.stack.nlayers, 3)
        np.testing.assert_array_equal(solver.run_frequencies, [10.0])

    def test_builds_are_independent(self):
        builder = SolverBuilder().with_stack([Layer(), Layer()]).with_dbmin(20)
        first = builder.build()
        builder.with_dbmin(50)
        self.assertEqual(first.config.dbmin, 20.0)
        self.assertEqual(builder.build().config.dbmin, 50.0)

    def test_from_config_dict(self):
        solver = SolverBuilder().from_config(self.config).build()
        self.assertEqual(solver.config.precision, Precision.SINGLE)
        self.assertEqual(solver.config.dbmin, 40.0)
        self.assertEqual(solver.config.max_workers, 2)
        self.assertEqual(solver.stack.nlayers, 3)
        sheet = solver.stack.sheets[0]
        self.assertIs(sheet.sheet_class, SheetClass.ADMITTANCE)
        self.assertAlmostEqual(solver.stack.layers[1].width, 1e-3)
        self.assertEqual(solver.run_steering, {"phi": 0.0, "theta": [0.0, 20.0]})

    def test_from_config_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "fss.json"
            path.write_text(json.dumps(self.config))
            solver = SolverBuilder().from_config(str(path)).build()
        self.assertEqual(solver.stack.nlayers, 3)
        self.assertEqual(solver.config.precision, Precision.SINGLE)

    def test_case_insensitive_keys(self):
        solver = SolverBuilder().from_config({
            "DBMIN": 25, "Layers": [{"Type": "Layer", "EPSR": 2.0}, {"type": "layer"}]
        }).build()
        self.assertEqual(solver.config.dbmin, 25.0)
        self.assertEqual(solver.stack.layers[0].epsr, 2.0)

    def test_unknown_keys(self):
        with self.assertRaises(ValueError) as ctx:
            SolverBuilder().from_config({"dbmin": 30, "wavelengths": [1.0]})
        self.assertIn("wavelengths", str(ctx.exception))

    def test_invalid_items(self):
        bad_items = [
            {"type": "slab", "width": 1.0},
            {"type": "layer", "thickness": 1.0},
            {"type": "sheet", "element": "cross", "s1": CELL[0], "s2": CELL[1]},
            {"type": "sheet", "element": "patch", "s1": CELL[0], "s2": CELL[1]},
        ]
        for item in bad_items:
            with self.subTest(item=item):
                with self.assertRaises(ConfigurationError):
                    SolverBuilder().from_config({"layers": [{"type": "layer"}, item]})

    def test_invalid_stack_fails_at_build(self):
        builder = SolverBuilder().with_sheet(self.patch).with_layer(Layer())
        with self.assertRaises(ConfigurationError):
            builder.build()

    def test_log_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "run.log"
            solver = SolverBuilder().with_stack([Layer(), Layer()]).with_log_file(path).build()
            try:
                logging.getLogger(LOGGER_NAME + ".test").debug("hello")
                self.assertIn("hello", path.read_text())
            finally:
                solver.run_log.close()


class TestAnalysisConfig(unittest.TestCase):

    def test_defaults(self):
        config = AnalysisConfig()
        self.assertEqual(config.precision, Precision.DOUBLE)
        self.assertEqual(config.max_workers, 1)
        self.assertTrue(config.deduplicate)

    def test_precision_from_string(self):
        self.assertEqual(AnalysisConfig(precision='single').precision, Precision.SINGLE)

    def test_invalid_settings(self):
        for kwargs in [{'max_modes': 1}, {'max_workers': 0}, {'quadrature_subdivisions': -1},
                       {'smoothing_fraction': 0.0}, {'spectral_radius': 3.0}]:
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigurationError):
                    AnalysisConfig(**kwargs)


if __name__ == '__main__':
    unittest.main()
