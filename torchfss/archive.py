"""Append-only storage of analysis results.

An archive is a directory holding one ``<serial>.pt`` file per analysis
point, each written with ``torch.save`` from ``Result.to_dict()``. Entries
are written to a temporary name and moved into place, so a reader never
sees a partial entry.

Examples:
```python
archive = ResultArchive.create("runs/fss")
archive.append(0, result)
results = archive.read()
```
"""
import os
import threading
from pathlib import Path
from typing import List, Union

import torch

from .results import Result

SUFFIX = '.pt'


class ResultArchive:
    """Directory of results keyed by the serial index of each analysis point."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def create(cls, path: Union[str, Path]) -> 'ResultArchive':
        """Start a fresh archive at ``path``, removing earlier entries."""
        archive = cls(path)
        archive.path.mkdir(parents=True, exist_ok=True)
        for entry in archive.path.glob('*' + SUFFIX):
            entry.unlink()
        return archive

    def keys(self) -> List[int]:
        if not self.path.is_dir():
            return []
        return sorted(int(p.stem) for p in self.path.glob('*' + SUFFIX) if p.stem.isdigit())

    def __len__(self) -> int:
        return len(self.keys())

    def append(self, index: int, result: Result) -> None:
        """Write ``result`` under serial ``index``.

        Raises:
            ValueError: If ``index`` is already present.
        """
        target = self.path / f"{int(index)}{SUFFIX}"
        with self._lock:
            if target.exists():
                raise ValueError(f"Archive {self.path} already holds entry {index}")
            self.path.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix('.tmp')
            torch.save(result.to_dict(), tmp)
            os.replace(tmp, target)

    def read(self) -> List[Result]:
        """All results, ordered by serial index."""
        results = []
        for key in self.keys():
            data = torch.load(self.path / f"{key}{SUFFIX}", weights_only=True)
            results.append(Result.from_dict(data))
        return results
