from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union, TYPE_CHECKING
import json
import os

import numpy as np
import torch

from .constants import (DEFAULT_CONDITION_LIMIT, DEFAULT_DBMIN, DEFAULT_FT_TOLERANCE,
                        DEFAULT_MAX_MODES, DEFAULT_QUADRATURE_SUBDIVISIONS,
                        DEFAULT_SMOOTHING_FRACTION, DEFAULT_SPECTRAL_RADIUS,
                        DEFAULT_THIN_LAYER_DB, Precision)
from .exceptions import ConfigurationError
from .layers import Layer
from .logger import Logger
from .sheets import Sheet, nullsheet, rectangular_patch, rectangular_strip

# Import types for type checking only, not at runtime
if TYPE_CHECKING:
    from .solver import FSSSolver


@dataclass
class AnalysisConfig:
    """Numerical settings of an analysis.

    Attributes:
        dbmin (float): Attenuation (dB) across a bounding layer beyond which
            a Floquet ring is dropped from the cascade.
        max_modes (int): Upper bound on modes per layer.
        thin_layer_db (float): Layers attenuating the first evanescent ring
            by less than this (dB) are absorbed into an adjacent sheet's block.
        smoothing_fraction (float): Taper width as a fraction of the larger
            reciprocal lattice vector.
        spectral_radius (float): Fill radius in units of the taper width.
        quadrature_subdivisions (int): Triangle subdivision level of the
            Fourier-transform quadrature.
        ft_tolerance (float): Relative wavevector tolerance of the transform cache.
        condition_limit (float): Smallest acceptable LU pivot ratio.
        max_workers (int): Worker threads of ``analyze``.
        deduplicate (bool): Reuse the GSM of interchangeable blocks.
        precision (Precision): SINGLE (complex64) or DOUBLE (complex128).
        device (str | torch.device): Torch device.
    """
    dbmin: float = DEFAULT_DBMIN
    max_modes: int = DEFAULT_MAX_MODES
    thin_layer_db: float = DEFAULT_THIN_LAYER_DB
    smoothing_fraction: float = DEFAULT_SMOOTHING_FRACTION
    spectral_radius: float = DEFAULT_SPECTRAL_RADIUS
    quadrature_subdivisions: int = DEFAULT_QUADRATURE_SUBDIVISIONS
    ft_tolerance: float = DEFAULT_FT_TOLERANCE
    condition_limit: float = DEFAULT_CONDITION_LIMIT
    max_workers: int = 1
    deduplicate: bool = True
    precision: Precision = Precision.DOUBLE
    device: Union[str, torch.device] = 'cpu'

    def __post_init__(self):
        if isinstance(self.precision, str):
            self.precision = Precision[self.precision.upper()]
        if self.max_modes < 2:
            raise ConfigurationError(f"max_modes must be at least 2, got {self.max_modes}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.quadrature_subdivisions < 0:
            raise ConfigurationError("quadrature_subdivisions must be non-negative")
        if self.smoothing_fraction <= 0 or self.spectral_radius <= 4:
            raise ConfigurationError("smoothing_fraction must be positive and spectral_radius above 4")


def _create_item(item: Dict[str, Any], units: str) -> Union[Layer, Sheet]:
    """Create a layer or sheet from its dictionary specification.

    Layer items use the ``Layer`` keyword arguments. Sheet items name an
    ``element`` (``patch``, ``strip`` or ``null``), the lattice vectors
    ``s1`` and ``s2`` and the element's own keyword arguments.

    Examples:
    ```python
    _create_item({"type": "layer", "width": 0.5, "epsr": 2.2}, "mm")
    _create_item({"type": "sheet", "element": "patch", "class": "J",
                  "s1": [10, 0], "s2": [0, 10], "lx": 6, "ly": 6,
                  "nx": 6, "ny": 6}, "mm")
    ```
    """
    spec = {str(k).lower(): v for k, v in item.items()}
    kind = str(spec.pop('type', '')).lower()
    spec.setdefault('units', units)
    try:
        if kind == 'layer':
            return Layer(**spec)
        if kind == 'sheet':
            element = str(spec.pop('element', '')).lower()
            if 'class' in spec:
                spec['sheet_class'] = spec.pop('class')
            if element == 'patch':
                return rectangular_patch(**spec)
            if element == 'strip':
                return rectangular_strip(**spec)
            if element == 'null':
                return nullsheet(**spec)
            raise ConfigurationError(f"Unknown sheet element {element!r}; use patch, strip or null")
    except TypeError as err:
        raise ConfigurationError(f"Invalid {kind} specification {item}: {err}") from err
    raise ConfigurationError(f"Stack item type must be 'layer' or 'sheet', got {kind!r}")


class SolverBuilder:
    """Builder for creating and configuring ``FSSSolver`` instances.

    Stack items are added in order from region 1 to region N; numerical
    settings, run frequencies and steering are set with ``with_*`` methods or
    loaded from a JSON file or dictionary.

    Examples:
    ```python
    from torchfss import Layer, SolverBuilder, rectangular_patch

    patch = rectangular_patch([10, 0], [0, 10], lx=6, ly=6, nx=6, ny=6)
    solver = (SolverBuilder()
              .with_layer(Layer())
              .with_sheet(patch)
              .with_layer(Layer(width=1.0, epsr=2.2))
              .with_layer(Layer())
              .with_frequencies(np.linspace(8, 12, 5))
              .with_steering({'phi': 0.0, 'theta': [0.0, 30.0]})
              .with_dbmin(40)
              .build())
    results = solver.analyze()

    # Load everything from a JSON file
    solver = SolverBuilder().from_config("fss.json").build()
    ```

    Keywords:
        builder pattern, solver configuration, JSON, stack
    """

    def __init__(self):
        """Initialize the builder with default values for all solver parameters."""
        self._config = AnalysisConfig()
        self._items: List[Union[Layer, Sheet]] = []
        self._lattice = None
        self._units = 'mm'
        self._frequencies = None
        self._steering = None
        self._archive = None
        self._log_file = None
        self._config_path = None

    def with_precision(self, precision: Union[Precision, str]) -> 'SolverBuilder':
        """Set the numerical precision (``Precision.SINGLE`` or ``Precision.DOUBLE``)."""
        if isinstance(precision, str):
            precision = Precision[precision.upper()]
        self._config.precision = precision
        return self

    def with_device(self, device: Union[str, torch.device]) -> 'SolverBuilder':
        self._config.device = device
        return self

    def with_units(self, units: str) -> 'SolverBuilder':
        """Set the default length unit of stack items loaded from a configuration."""
        self._units = units
        return self

    def with_layer(self, layer: Layer) -> 'SolverBuilder':
        self._items.append(layer)
        return self

    def with_sheet(self, sheet: Sheet) -> 'SolverBuilder':
        self._items.append(sheet)
        return self

    def with_stack(self, items: Sequence[Union[Layer, Sheet]]) -> 'SolverBuilder':
        """Replace the stack with ``items``, listed from region 1 to region N."""
        self._items = list(items)
        return self

    def with_lattice(self, lattice) -> 'SolverBuilder':
        """Set an explicit lattice, needed for phase steering of a sheet-less stack."""
        self._lattice = lattice
        return self

    def with_frequencies(self, frequencies: Union[float, Sequence[float]]) -> 'SolverBuilder':
        """Set the analysis frequencies in GHz."""
        self._frequencies = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
        return self

    def with_steering(self, steering: Dict[str, Any]) -> 'SolverBuilder':
        """Set the scan, e.g. ``{'phi': 0, 'theta': [0, 15, 30]}`` (outer key first)."""
        self._steering = steering
        return self

    def with_dbmin(self, dbmin: float) -> 'SolverBuilder':
        self._config.dbmin = float(dbmin)
        return self

    def with_max_modes(self, max_modes: int) -> 'SolverBuilder':
        self._config.max_modes = int(max_modes)
        return self

    def with_thin_layer_db(self, thin_layer_db: float) -> 'SolverBuilder':
        self._config.thin_layer_db = float(thin_layer_db)
        return self

    def with_smoothing(self, smoothing_fraction: float, spectral_radius: float) -> 'SolverBuilder':
        """Set the taper width fraction and the fill radius (in taper widths)."""
        self._config.smoothing_fraction = float(smoothing_fraction)
        self._config.spectral_radius = float(spectral_radius)
        return self

    def with_quadrature_subdivisions(self, subdivisions: int) -> 'SolverBuilder':
        self._config.quadrature_subdivisions = int(subdivisions)
        return self

    def with_ft_tolerance(self, tolerance: float) -> 'SolverBuilder':
        self._config.ft_tolerance = float(tolerance)
        return self

    def with_condition_limit(self, condition_limit: float) -> 'SolverBuilder':
        self._config.condition_limit = float(condition_limit)
        return self

    def with_max_workers(self, max_workers: int) -> 'SolverBuilder':
        self._config.max_workers = int(max_workers)
        return self

    def with_deduplication(self, deduplicate: bool) -> 'SolverBuilder':
        """Enable or disable reuse of interchangeable block GSMs."""
        self._config.deduplicate = bool(deduplicate)
        return self

    def with_archive(self, path: Union[str, os.PathLike]) -> 'SolverBuilder':
        self._archive = path
        return self

    def with_log_file(self, path: Union[str, os.PathLike]) -> 'SolverBuilder':
        """Write a run log (DEBUG and above) to ``path``."""
        self._log_file = path
        return self

    def from_config(self, config: Union[str, Dict[str, Any]]) -> 'SolverBuilder':
        """Configure the builder from a JSON configuration file or dictionary.

        Keys are case-insensitive. Valid keys: ``precision``, ``device``,
        ``frequencies``, ``steering``, ``units``, ``layers``, ``dbmin``,
        ``max_modes``, ``thin_layer_db``, ``smoothing_fraction``,
        ``spectral_radius``, ``quadrature_subdivisions``, ``ft_tolerance``,
        ``condition_limit``, ``max_workers``, ``deduplicate``, ``log_file``,
        ``archive``.

        Examples:
        ```python
        builder = SolverBuilder().from_config({
            "units": "mm",
            "frequencies": [8.0, 10.0, 12.0],
            "steering": {"phi": 0, "theta": [0, 30]},
            "layers": [
                {"type": "layer"},
                {"type": "sheet", "element": "patch", "s1": [10, 0], "s2": [0, 10],
                 "lx": 6, "ly": 6, "nx": 6, "ny": 6},
                {"type": "layer", "width": 1.0, "epsr": 2.2},
                {"type": "layer"}
            ]
        })
        ```

        Raises:
            ValueError: If unknown configuration keys are detected.
            ConfigurationError: If a stack item is malformed.
        """
        if isinstance(config, (str, os.PathLike)):
            self._config_path = config
            with open(config, 'r') as f:
                config = json.load(f)

        valid_keys = {
            'precision', 'device', 'frequencies', 'steering', 'units', 'layers',
            'dbmin', 'max_modes', 'thin_layer_db', 'smoothing_fraction', 'spectral_radius',
            'quadrature_subdivisions', 'ft_tolerance', 'condition_limit', 'max_workers',
            'deduplicate', 'log_file', 'archive'
        }

        # Create case-insensitive mapping of keys
        case_insensitive_config = {}
        for key, value in config.items():
            case_insensitive_config[key.lower()] = (key, value)

        unknown_keys = {orig for key, (orig, _) in case_insensitive_config.items()
                        if key not in valid_keys}
        if unknown_keys:
            raise ValueError(f"Unknown configuration keys detected: {unknown_keys}. "
                             f"Valid keys are: {sorted(valid_keys)}")

        values = {key: value for key, (_, value) in case_insensitive_config.items()}
        if 'precision' in values:
            self.with_precision(values['precision'])
        if 'device' in values:
            self.with_device(values['device'])
        if 'units' in values:
            self.with_units(values['units'])
        if 'frequencies' in values:
            self.with_frequencies(values['frequencies'])
        if 'steering' in values:
            self.with_steering(values['steering'])
        for key in ('dbmin', 'thin_layer_db', 'smoothing_fraction', 'spectral_radius',
                    'ft_tolerance', 'condition_limit'):
            if key in values:
                setattr(self._config, key, float(values[key]))
        for key in ('max_modes', 'quadrature_subdivisions', 'max_workers'):
            if key in values:
                setattr(self._config, key, int(values[key]))
        if 'deduplicate' in values:
            self.with_deduplication(values['deduplicate'])
        if 'log_file' in values:
            self.with_log_file(values['log_file'])
        if 'archive' in values:
            self.with_archive(values['archive'])
        if 'layers' in values:
            self._items = [_create_item(item, self._units) for item in values['layers']]

        return self

    def build(self) -> 'FSSSolver':
        """Build and return the configured solver instance.

        Raises:
            ConfigurationError: If the stack or the settings are invalid.
        """
        # Lazy import to avoid circular dependencies
        from .solver import FSSSolver, Stack

        config = AnalysisConfig(**{f: getattr(self._config, f)
                                   for f in self._config.__dataclass_fields__})
        solver = FSSSolver(Stack(self._items, self._lattice), config,
                           frequencies=self._frequencies, steering=self._steering,
                           archive=self._archive)
        if self._log_file is not None:
            solver.run_log = Logger(file_path=self._log_file)
        return solver
