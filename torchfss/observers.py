"""Observer implementations for tracking and reporting analysis progress.

This module provides concrete implementations of the SolverObserver interface
for monitoring an ``FSSSolver.analyze`` run:

- ConsoleProgressObserver: Prints progress information to the console
- TqdmProgressObserver: Displays a progress bar over analysis points using
  the tqdm library (defined only when tqdm is installed)
"""

import time

from .solver import SolverObserver

try:
    from tqdm import tqdm  # Optional dependency
    TQDM_AVAILABLE = True
except ImportError:
    TQDM_AVAILABLE = False


class ConsoleProgressObserver(SolverObserver):
    """Observer that prints analysis progress to the console.

    Start, completion, skipped and failed points are always reported. In
    verbose mode every started point and every block is reported as well.

    Example:
        ```python
        from torchfss.observers import ConsoleProgressObserver

        solver.add_observer(ConsoleProgressObserver(verbose=False))
        results = solver.analyze(frequencies, steering)
        ```
    """

    def __init__(self, verbose: bool = True):
        """Initialize the console observer.

        Args:
            verbose: Whether to print detailed progress messages (default: True)
        """
        self.verbose = verbose
        self.start_time = None

    def update(self, event_type: str, data: dict) -> None:
        """Handle notifications from the solver.

        Args:
            event_type: The type of event that occurred
            data: Additional data related to the event
        """
        if event_type == "analysis_starting":
            self.start_time = time.time()
            total = data.get("total", 0)
            n_freqs = data.get("n_freqs", 0)
            n_steering = data.get("n_steering", 0)
            print(f"Starting analysis of {total} points ({n_steering} scan x {n_freqs} frequencies)...")
        elif event_type == "point_started" and self.verbose:
            current = data.get("current", 0)
            total = data.get("total", 0)
            print(f"Point {current}/{total}: {data.get('fghz', 0):g} GHz, {data.get('steering', {})}")
        elif event_type == "block_started" and self.verbose:
            note = " (reused)" if data.get("cached") else ""
            print(f"  Block {data.get('block', 0) + 1}/{data.get('n_blocks', 0)}{note}")
        elif event_type == "point_completed" and self.verbose:
            print(f"Point {data.get('current', 0)}/{data.get('total', 0)} done "
                  f"({data.get('progress', 0):.1f}%)")
        elif event_type == "point_skipped":
            print(f"Point {data.get('current', 0)} skipped: {data.get('error')}")
        elif event_type == "point_failed":
            print(f"Point {data.get('current', 0)} failed: {data.get('error')}")
        elif event_type == "analysis_completed":
            elapsed_time = time.time() - self.start_time if self.start_time is not None else 0.0
            print(f"Analysis completed in {elapsed_time:.2f} seconds: "
                  f"{data.get('completed', 0)} completed, {data.get('skipped', 0)} skipped, "
                  f"{data.get('failed', 0)} failed.")


if TQDM_AVAILABLE:
    class TqdmProgressObserver(SolverObserver):
        """Observer that displays analysis progress using a tqdm progress bar.

        Note:
            This observer requires the tqdm package to be installed. If tqdm
            is not available, this class will not be defined.

        Example:
            ```python
            from torchfss.observers import TqdmProgressObserver

            solver.add_observer(TqdmProgressObserver())
            results = solver.analyze(frequencies, steering)
            ```
        """

        def __init__(self):
            """Initialize the tqdm progress observer."""
            self.point_pbar = None

        def update(self, event_type: str, data: dict) -> None:
            """Called when the solver notifies of an event.

            Args:
                event_type: The type of event that occurred
                data: Additional data related to the event
            """
            if event_type == "analysis_starting":
                total = data.get("total", 0)
                self.point_pbar = tqdm(total=total, desc="Points", position=0, leave=False)
            elif event_type in ("point_completed", "point_skipped", "point_failed"):
                if self.point_pbar is not None:
                    self.point_pbar.update(1)
            elif event_type == "analysis_completed":
                if self.point_pbar is not None:
                    self.point_pbar.close()
                    self.point_pbar = None
