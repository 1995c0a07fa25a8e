"""
torchfss solver module for periodic multilayer frequency selective surfaces.

This module drives the analysis of a planar stack of dielectric layers and
patterned periodic sheets. For every (scan, frequency) point it partitions the
stack into Gblocks, solves each sheet block by the method of moments, and
cascades all block scattering matrices into the generalized scattering matrix
(GSM) of the whole stack.

Key components:
- SolverObserver / SolverSubjectMixin: progress notification
- Stack: validated sequence of layers and sheets
- Steering: scan specification in angles or unit-cell phase shifts
- FSSSolver: mode selection, block partition, per-point solve, analysis loop
- create_solver: factory function

Examples:
```python
from torchfss import Layer, FSSSolver, Stack, rectangular_patch

patch = rectangular_patch([10, 0], [0, 10], lx=6, ly=6, nx=6, ny=6, units='mm')
stack = Stack([Layer(), patch, Layer(width=1.0, epsr=2.2, units='mm'), Layer()])
solver = FSSSolver(stack)
results = solver.analyze(frequencies=[8.0, 10.0, 12.0],
                         steering={'phi': [0.0], 'theta': [0.0, 30.0]})
```

Keywords:
    frequency selective surface, Floquet modes, method of moments, GSM cascade,
    periodic structures, scan, observer pattern
"""
import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from .algorithm import solve_sheet_gsm
from .archive import ResultArchive
from .blocks import choose_gblocks, find_duplicate_blocks, slab_interface_gsm
from .builder import AnalysisConfig
from .constants import C_0, Precision
from .exceptions import AnalysisPointError, ConfigurationError, CutoffError
from .fill import fill_harmonics
from .lattice import Lattice
from .logger import Logger
from .layers import Layer, dominant_cutoff, modal_constants, mode_harmonics, real_dtype
from .modes import choose_layer_modes
from .results import GSM, Result
from .rwg import setup_rwg
from .sheets import Sheet
from .utils import cascade, propagate_gsm, propagate_gsm_left, translate_gsm

logger = logging.getLogger(__name__)


class SolverObserver:
    """Interface for observers that track solver progress.

    Concrete observers override ``update``. The solver emits these events:

    - ``"analysis_starting"``: ``total``, ``n_freqs``, ``n_steering``, ``max_workers``
    - ``"point_started"``: ``index``, ``current``, ``total``, ``fghz``, ``steering``
    - ``"block_started"``: ``index``, ``block``, ``n_blocks``, ``cached``
    - ``"point_completed"``: ``index``, ``current``, ``total``, ``progress``, ``result``
    - ``"point_skipped"``: ``index``, ``current``, ``total``, ``progress``, ``error``
    - ``"point_failed"``: ``index``, ``current``, ``total``, ``progress``, ``error``
    - ``"analysis_completed"``: ``completed``, ``skipped``, ``failed``, ``total``

    Events about a point's blocks may arrive from worker threads.

    Examples:
    ```python
    class FailureCounter(SolverObserver):
        def __init__(self):
            self.failed = 0

        def update(self, event_type, data):
            if event_type == "point_failed":
                self.failed += 1

    solver.add_observer(FailureCounter())
    ```
    """

    def update(self, event_type: str, data: dict) -> None:
        """Called when the solver notifies of an event.

        Args:
            event_type (str): Name of the event.
            data (dict): Event payload; contents vary by event type.
        """
        pass


class SolverSubjectMixin:
    """Mixin class that allows a solver to notify observers of progress.

    Attributes:
        _observers (list): Registered observers.
    """

    def __init__(self):
        self._observers = []

    def add_observer(self, observer: SolverObserver) -> None:
        """Register ``observer``; an observer is only registered once."""
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SolverObserver) -> None:
        """Unregister ``observer`` if present."""
        if observer in self._observers:
            self._observers.remove(observer)

    def notify_observers(self, event_type: str, data: dict = None) -> None:
        """Call ``update`` on every registered observer."""
        if data is None:
            data = {}

        for observer in list(self._observers):
            observer.update(event_type, data)


class Stack:
    """Validated stack of layers and sheets, listed from region 1 to region N.

    The stack must begin and end with a layer, and sheets may not be
    adjacent. Junction ``j`` lies between layers ``j`` and ``j + 1``; a sheet
    listed there scatters at that junction, and junctions without a sheet are
    plain dielectric interfaces.

    Layers and sheets are copied, so one ``Layer`` object may appear several
    times. Sheets that share an identity (e.g. created by
    ``Sheet.translated``) receive the same integer handle.

    Args:
        items (Sequence[Layer | Sheet]): The stack.
        lattice (Lattice, optional): Lattice of the stack. Required for phase
            steering of a stack without sheets; must match the sheets'
            lattice when both are given.

    Raises:
        ConfigurationError: For a malformed stack, mismatched lattices or a
            lossy ambient medium.
    """

    def __init__(self, items: Sequence[Union[Layer, Sheet]], lattice: Optional[Lattice] = None):
        items = list(items)
        if len(items) < 2:
            raise ConfigurationError("A stack needs at least two layers")
        for item in items:
            if not isinstance(item, (Layer, Sheet)):
                raise ConfigurationError(f"Stack items must be Layer or Sheet, got {type(item).__name__}")
        if not isinstance(items[0], Layer) or not isinstance(items[-1], Layer):
            raise ConfigurationError("A stack must begin and end with a Layer")

        self.layers: List[Layer] = []
        self.sheets: Dict[int, Sheet] = {}
        handles: Dict[int, int] = {}
        previous = None
        for item in items:
            if isinstance(item, Sheet):
                if isinstance(previous, Sheet):
                    raise ConfigurationError(
                        f"Adjacent sheets at junction {len(self.layers) - 1}; separate them by a layer")
                sheet = copy.copy(item)
                sheet.handle = handles.setdefault(id(item.handle_key), len(handles) + 1)
                self.sheets[len(self.layers) - 1] = sheet
            else:
                layer = copy.copy(item)
                layer.mode_count = 0
                self.layers.append(layer)
            previous = item

        self.lattice = lattice
        for junction, sheet in self.sheets.items():
            if self.lattice is None:
                self.lattice = sheet.lattice
            elif not self.lattice.is_close(sheet.lattice):
                raise ConfigurationError(
                    f"Sheet at junction {junction} has lattice {sheet.lattice}, "
                    f"inconsistent with {self.lattice}")

        for name, layer in (("region 1", self.layers[0]), ("region N", self.layers[-1])):
            if not layer.is_lossless:
                raise ConfigurationError(f"Ambient medium of {name} must be lossless: {layer}")

    @property
    def nlayers(self) -> int:
        return len(self.layers)

    @property
    def active(self) -> bool:
        """True when at least one sheet scatters."""
        return any(not sheet.is_inert for sheet in self.sheets.values())


_STEERING_ALIASES = {
    'theta': 'theta', 'θ': 'theta',
    'phi': 'phi', 'ϕ': 'phi', 'φ': 'phi',
    'psi1': 'psi1', 'ψ1': 'psi1', 'ψ₁': 'psi1',
    'psi2': 'psi2', 'ψ2': 'psi2', 'ψ₂': 'psi2',
}
_ANGLE_KEYS = {'theta', 'phi'}
_PHASE_KEYS = {'psi1', 'psi2'}


class Steering:
    """Scan specification: two named value lists, the first being the outer loop.

    Either ``theta``/``phi`` (incidence angles in degrees, measured in region
    1) or ``psi1``/``psi2`` (unit-cell phase shifts in radians along ``s1``
    and ``s2``). Scalars are accepted as one-element lists.

    Examples:
    ```python
    Steering({'phi': [0, 90], 'theta': np.arange(0, 60, 10)})
    Steering({'psi1': 0.0, 'psi2': [0.0, 0.5]})
    ```

    Raises:
        ConfigurationError: For unknown or mixed keys, empty lists,
            non-finite values or ``theta`` outside ``[0, 90)``.
    """

    def __init__(self, spec: Mapping[str, Any]):
        if isinstance(spec, Steering):
            spec = spec.as_dict()
        names = []
        values = []
        for key, value in spec.items():
            name = _STEERING_ALIASES.get(str(key).strip().lower())
            if name is None:
                raise ConfigurationError(f"Unknown steering parameter {key!r}. "
                                         "Use theta/phi or psi1/psi2")
            if name in names:
                raise ConfigurationError(f"Steering parameter {name} given twice")
            array = np.atleast_1d(np.asarray(value, dtype=np.float64)).ravel()
            if array.size == 0 or not np.all(np.isfinite(array)):
                raise ConfigurationError(f"Steering parameter {name} needs finite values")
            names.append(name)
            values.append(array)
        if set(names) not in (_ANGLE_KEYS, _PHASE_KEYS):
            raise ConfigurationError(
                f"Steering must give exactly theta and phi, or psi1 and psi2; got {names}")
        self.names: Tuple[str, str] = (names[0], names[1])
        self.values: Tuple[np.ndarray, np.ndarray] = (values[0], values[1])
        if self.is_angle:
            theta = self.values[self.names.index('theta')]
            if np.any(theta < 0) or np.any(theta >= 90):
                raise ConfigurationError("Incidence angle theta must lie in [0, 90) degrees")

    @property
    def is_angle(self) -> bool:
        return set(self.names) == _ANGLE_KEYS

    @property
    def is_phase(self) -> bool:
        return not self.is_angle

    def __len__(self) -> int:
        return len(self.values[0]) * len(self.values[1])

    def points(self) -> Iterator[Dict[str, float]]:
        """Steering dictionaries, outer parameter varying slowest."""
        outer, inner = self.names
        for a in self.values[0]:
            for b in self.values[1]:
                yield {outer: float(a), inner: float(b)}

    def as_dict(self) -> Dict[str, List[float]]:
        return {name: vals.tolist() for name, vals in zip(self.names, self.values)}

    def __repr__(self):
        return f"Steering({self.as_dict()})"


class FSSSolver(SolverSubjectMixin):
    """Solver for the generalized scattering matrix of a periodic stack.

    ``prepare`` does the per-run work (Gblock partition, mode selection,
    deduplication, basis functions and fill harmonics). ``solve_point``
    returns the ``Result`` of one (frequency, scan) point and ``analyze``
    runs every point of a frequency list and a ``Steering``.

    Attributes:
        stack (Stack): The analysed stack.
        config (AnalysisConfig): Numerical settings.
        gblocks (List[Gblock]): Block partition, set by ``prepare``.
        duplicates (List[Optional[int]]): Earlier interchangeable block of each block.
        failures (List[AnalysisPointError]): Points that failed in the last ``analyze``.
    """

    def __init__(self, stack: Stack, config: Optional[AnalysisConfig] = None,
                 frequencies: Optional[Sequence[float]] = None,
                 steering: Union[Steering, Mapping[str, Any], None] = None,
                 archive: Union[str, Path, ResultArchive, None] = None):
        SolverSubjectMixin.__init__(self)
        self.stack = stack
        self.config = config if config is not None else AnalysisConfig()
        self.run_frequencies = frequencies
        self.run_steering = steering
        self.run_archive = archive
        self.run_log: Optional[Logger] = None
        self.tcomplex = torch.complex64 if self.config.precision == Precision.SINGLE else torch.complex128
        self.device = self.config.device
        self.gblocks = []
        self.duplicates = []
        self.failures: List[AnalysisPointError] = []
        self.frequencies = np.zeros(0)
        self.steering: Optional[Steering] = None
        self._harmonics = np.zeros((1, 2), dtype=np.int64)
        self._rwg = {}
        self._fill = None
        self._prepared = False

    @property
    def layers(self) -> List[Layer]:
        return self.stack.layers

    @property
    def lattice(self) -> Optional[Lattice]:
        return self.stack.lattice

    def _k0(self, fghz: float) -> float:
        return 2 * np.pi * fghz * 1e9 / C_0

    def beta00(self, steer: Mapping[str, float], k0: float) -> Tuple[float, float]:
        """Dominant transverse wavevector (rad/m) of a steering point."""
        if 'theta' in steer:
            k1 = k0 * self.layers[0].index
            th, ph = np.radians(steer['theta']), np.radians(steer['phi'])
            return (k1 * np.sin(th) * np.cos(ph), k1 * np.sin(th) * np.sin(ph))
        b = (steer['psi1'] * self.lattice.beta1 + steer['psi2'] * self.lattice.beta2) / (2 * np.pi)
        return (float(b[0]), float(b[1]))

    def prepare(self, frequencies: Sequence[float], steering: Union[Steering, Mapping[str, Any]]) -> None:
        """Per-run setup for the given frequencies (GHz) and steering.

        Raises:
            ConfigurationError: For non-positive frequencies or phase steering
                without a lattice.
        """
        fghz = np.atleast_1d(np.asarray(frequencies, dtype=np.float64)).ravel()
        if fghz.size == 0 or not np.all(np.isfinite(fghz)) or np.any(fghz <= 0):
            raise ConfigurationError(f"Frequencies must be positive, got {fghz.tolist()}")
        steering = steering if isinstance(steering, Steering) else Steering(steering)
        if steering.is_phase and self.lattice is None:
            raise ConfigurationError("Phase steering (psi1, psi2) requires a patterned sheet "
                                     "or an explicit lattice")
        self.frequencies = fghz
        self.steering = steering

        cfg = self.config
        k0min, k0max = self._k0(fghz.min()), self._k0(fghz.max())
        beta00max = max(float(np.hypot(*self.beta00(p, k0max))) for p in steering.points())

        layers, sheets = self.layers, self.stack.sheets
        self.gblocks = choose_gblocks(layers, sheets, self.lattice, k0min, cfg.thin_layer_db)
        counts = choose_layer_modes(layers, self.gblocks, self.lattice, k0max, cfg.dbmin,
                                    beta00max, cfg.max_modes, active=self.stack.active)
        if self.lattice is not None:
            self._harmonics = self.lattice.ordered_harmonics(max(max(counts) // 2, 1))[0]
        if cfg.deduplicate:
            self.duplicates = find_duplicate_blocks(self.gblocks, layers, sheets)
        else:
            self.duplicates = [None] * len(self.gblocks)

        self._rwg = {}
        for sheet in sheets.values():
            if not sheet.is_inert and sheet.handle not in self._rwg:
                self._rwg[sheet.handle] = setup_rwg(sheet)
        self._fill = None
        if self.stack.active:
            self._fill = fill_harmonics(self.lattice, cfg.smoothing_fraction, cfg.spectral_radius)

        self._log_setup()
        self._prepared = True

    def _log_setup(self) -> None:
        logger.info("Layers:")
        logger.info(f"{'#':>4} {'width (m)':>12} {'epsr':>8} {'tandel':>8} {'mur':>8} {'modes':>6}")
        for i, layer in enumerate(self.layers):
            logger.info(f"{i:>4} {layer.width:>12.5g} {layer.epsr:>8.4g} {layer.tandel:>8.4g} "
                        f"{layer.mur:>8.4g} {layer.mode_count:>6}")
        if self.stack.sheets:
            logger.info("Sheets:")
            logger.info(f"{'junction':>8} {'class':>5} {'handle':>6} {'style':>8} {'unknowns':>8}")
            for j, sheet in self.stack.sheets.items():
                nbf = self._rwg[sheet.handle].nbf if sheet.handle in self._rwg else 0
                logger.info(f"{j:>8} {sheet.sheet_class.value:>5} {sheet.handle:>6} "
                            f"{sheet.style or '-':>8} {nbf:>8}")
        for k, (gbl, dup) in enumerate(zip(self.gblocks, self.duplicates)):
            note = "" if dup is None else f" (reuses block {dup})"
            logger.info(f"Gblock {k}: layers {gbl.first}-{gbl.last}, sheet junction {gbl.junction}{note}")
        if self._fill is not None:
            logger.info(f"{len(self._fill)} fill harmonics, smoothing {self._fill.smoothing:.5g} rad/m")

    def _mode_wavevectors(self, count: int, beta00) -> Tuple[torch.Tensor, torch.Tensor]:
        mn, te = mode_harmonics(self._harmonics, count)
        tfloat = real_dtype(self.tcomplex)
        if self.lattice is None:
            beta = torch.as_tensor(np.tile(np.asarray(beta00, dtype=np.float64), (count, 1)),
                                   dtype=tfloat, device=self.device)
        else:
            beta = self.lattice.transverse_wavevectors(mn, beta00, dtype=tfloat, device=self.device)
        return beta, torch.as_tensor(te, device=self.device)

    def _layer_gamma(self, layer: Layer, k0: float, beta00) -> torch.Tensor:
        beta, te = self._mode_wavevectors(layer.mode_count, beta00)
        return modal_constants(layer.epsilon, layer.mu, k0, beta, te, self.tcomplex)[0]

    def solve_point(self, fghz: float, steer: Mapping[str, float], index: Optional[int] = None) -> Result:
        """GSM of the whole stack at one frequency (GHz) and steering point.

        Raises:
            CutoffError: If the dominant mode is cut off in an ambient region.
            SingularMatrixError: If a sheet's interaction matrix is singular.
        """
        if not self._prepared:
            raise RuntimeError("FSSSolver.prepare must be called before solve_point")
        steer = dict(steer)
        cfg = self.config
        k0 = self._k0(fghz)
        beta00 = self.beta00(steer, k0)
        layers, sheets = self.layers, self.stack.sheets
        for name, layer in (("region 1", layers[0]), ("region N", layers[-1])):
            if dominant_cutoff(layer, k0, beta00):
                raise CutoffError(f"Dominant mode cut off in {name}", fghz, steer)

        ft_tolerance = cfg.ft_tolerance * (self.lattice.max_beta if self.lattice is not None else 1.0)
        timings: Dict[str, float] = {}
        computed: Dict[int, GSM] = {}
        gsm = None
        tic = time.perf_counter()
        for k, gbl in enumerate(self.gblocks):
            n_left, n_right = layers[gbl.first].mode_count, layers[gbl.last].mode_count
            beta, is_te = self._mode_wavevectors(max(n_left, n_right), beta00)
            source = self.duplicates[k]
            self.notify_observers('block_started', {
                'index': index, 'block': k, 'n_blocks': len(self.gblocks),
                'cached': source is not None and source in computed})
            if gbl.junction is None:
                block = slab_interface_gsm(layers[gbl.first], layers[gbl.last], k0, beta, is_te,
                                           n_left, n_right, self.tcomplex)
            else:
                sheet = sheets[gbl.junction]
                if source is not None and source in computed:
                    block = computed[source]
                else:
                    block = solve_sheet_gsm(
                        sheet, self._rwg.get(sheet.handle), layers[gbl.first:gbl.last + 1],
                        gbl.sheet_offset, k0, beta00, self._harmonics, n_left, n_right,
                        self._fill, ft_tolerance, cfg.quadrature_subdivisions,
                        cfg.condition_limit, self.tcomplex, self.device,
                        context={'fghz': fghz, 'steering': steer, 'sheet': sheet.handle},
                        timings=timings)
                    computed[k] = block
                if sheet.dx != 0.0 or sheet.dy != 0.0:
                    block = translate_gsm(block, (sheet.dx, sheet.dy), beta[:n_left], beta[:n_right])
            gsm = block if gsm is None else cascade(gsm, block)

            layer = layers[gbl.last]
            if layer.width > 0.0:
                gsm = propagate_gsm(gsm, self._layer_gamma(layer, k0, beta00), layer.width)

        # reference plane of region 1 sits at its far face
        if layers[0].width > 0.0:
            gsm = propagate_gsm_left(gsm, self._layer_gamma(layers[0], k0, beta00), layers[0].width)

        elapsed = time.perf_counter() - tic
        phases = ", ".join(f"{name} {sec:.3g}s" for name, sec in timings.items())
        logger.debug(f"f = {fghz:g} GHz, {steer}: {elapsed:.3g}s" + (f" ({phases})" if phases else ""))

        first, last = layers[0], layers[-1]
        b1 = tuple(self.lattice.beta1) if self.lattice is not None else (0.0, 0.0)
        b2 = tuple(self.lattice.beta2) if self.lattice is not None else (0.0, 0.0)
        return Result(gsm=gsm, steering=steer, beta00=tuple(float(b) for b in beta00),
                      fghz=float(fghz), eps_in=first.epsilon, mu_in=first.mu,
                      beta1_in=b1, beta2_in=b2, eps_out=last.epsilon, mu_out=last.mu,
                      beta1_out=b1, beta2_out=b2)

    def points(self) -> Iterator[Tuple[int, float, Dict[str, float]]]:
        """Analysis points ``(serial, fghz, steering)``: outer scan, inner scan, frequency."""
        serial = 0
        for steer in self.steering.points():
            for fghz in self.frequencies:
                yield serial, float(fghz), steer
                serial += 1

    def _run_point(self, point, total: int):
        index, fghz, steer = point
        self.notify_observers('point_started', {
            'index': index, 'current': index + 1, 'total': total,
            'fghz': fghz, 'steering': steer})
        try:
            return self.solve_point(fghz, steer, index=index), None
        except AnalysisPointError as err:
            return None, err

    def analyze(self, frequencies: Optional[Sequence[float]] = None,
                steering: Union[Steering, Mapping[str, Any], None] = None,
                archive: Union[str, Path, ResultArchive, None] = None,
                max_workers: Optional[int] = None, raise_on_failure: bool = False) -> List[Result]:
        """Solve every (scan, frequency) point.

        Points are enumerated with the outer steering parameter varying
        slowest and frequency fastest; each point's position in that order is
        its serial index. Cut-off points are skipped with a warning; points
        whose solve fails are logged, collected in ``failures`` and skipped.

        Args:
            frequencies (Sequence[float], optional): Frequencies in GHz;
                defaults to those given at construction.
            steering (Steering | Mapping, optional): Scan specification;
                defaults to the one given at construction.
            archive (str | Path | ResultArchive, optional): Archive receiving
                each completed point under its serial index. A path starts a
                fresh archive; an open archive must not yet hold any index of
                the run. Defaults to the one given at construction.
            max_workers (int, optional): Worker threads; defaults to
                ``config.max_workers``. One worker runs inline.
            raise_on_failure (bool): Re-raise the first failure after all
                points have run.

        Returns:
            List[Result]: Completed results in serial order.

        Raises:
            ConfigurationError: If the run is underspecified or the archive
                already holds one of its points.
        """
        frequencies = self.run_frequencies if frequencies is None else frequencies
        steering = self.run_steering if steering is None else steering
        archive = self.run_archive if archive is None else archive
        if frequencies is None or steering is None:
            raise ConfigurationError("analyze needs frequencies and steering")
        self.prepare(frequencies, steering)
        if isinstance(archive, (str, Path)):
            archive = ResultArchive.create(archive)
        workers = max_workers if max_workers is not None else self.config.max_workers
        points = list(self.points())
        total = len(points)
        if archive is not None:
            taken = sorted(set(archive.keys()).intersection(range(total)))
            if taken:
                raise ConfigurationError(
                    f"Archive {archive.path} already holds points {taken}; start a fresh archive")
        self.failures = []
        results: List[Result] = []
        skipped = 0

        self.notify_observers('analysis_starting', {
            'total': total, 'n_freqs': len(self.frequencies),
            'n_steering': len(self.steering), 'max_workers': workers})

        def record(point, outcome):
            nonlocal skipped
            index = point[0]
            result, err = outcome
            data = {'index': index, 'current': index + 1, 'total': total,
                    'progress': (index + 1) / total * 100}
            if result is not None:
                results.append(result)
                if archive is not None:
                    archive.append(index, result)
                self.notify_observers('point_completed', {**data, 'result': result})
            elif isinstance(err, CutoffError):
                skipped += 1
                logger.warning(f"Skipping point {index}: {err}")
                self.notify_observers('point_skipped', {**data, 'error': err})
            else:
                self.failures.append(err)
                logger.error(f"Point {index} failed: {err}")
                self.notify_observers('point_failed', {**data, 'error': err})

        if workers <= 1:
            for point in points:
                record(point, self._run_point(point, total))
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self._run_point, point, total) for point in points]
                for point, future in zip(points, futures):
                    record(point, future.result())

        self.notify_observers('analysis_completed', {
            'completed': len(results), 'skipped': skipped,
            'failed': len(self.failures), 'total': total})
        logger.info(f"Analysis finished: {len(results)} of {total} points completed, "
                    f"{skipped} skipped, {len(self.failures)} failed")
        if raise_on_failure and self.failures:
            raise self.failures[0]
        return results


def create_solver(stack: Union[Stack, Sequence[Union[Layer, Sheet]]],
                  lattice: Optional[Lattice] = None,
                  precision: Precision = Precision.DOUBLE,
                  device: Union[str, torch.device] = 'cpu',
                  **settings) -> FSSSolver:
    """Create a solver for ``stack`` with the given numerical settings.

    Args:
        stack (Stack | Sequence): A ``Stack`` or the list of its layers and sheets.
        lattice (Lattice, optional): Explicit lattice for a list of items.
        precision (Precision): ``Precision.DOUBLE`` (complex128, default) or
            ``Precision.SINGLE`` (complex64).
        device (str | torch.device): Torch device.
        **settings: Any other ``AnalysisConfig`` field, e.g. ``dbmin=40``.

    Returns:
        FSSSolver: A solver ready for ``analyze``.

    Examples:
    ```python
    solver = create_solver([Layer(), patch, Layer()], dbmin=40, max_workers=4)
    ```
    """
    if not isinstance(stack, Stack):
        stack = Stack(stack, lattice)
    config = AnalysisConfig(precision=precision, device=device, **settings)
    return FSSSolver(stack, config)


def get_solver_builder():
    """Get a solver builder for creating a solver with a fluent interface.

    Examples:
    ```python
    solver = (get_solver_builder()
              .with_layer(Layer())
              .with_sheet(patch)
              .with_layer(Layer())
              .with_dbmin(40)
              .build())
    ```
    """
    from .builder import SolverBuilder
    return SolverBuilder()
