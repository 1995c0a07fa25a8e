"""torchfss: PyTorch solver for periodic multilayer frequency selective surfaces.

torchfss computes the generalized scattering matrix (GSM) of a planar stack of
dielectric layers and patterned periodic sheets, for every frequency and scan
condition of a run. Each sheet is solved by a spectral-domain method of
moments on RWG basis functions; layers and sheets are grouped into blocks
whose GSMs are cascaded with the Redheffer star product. Results can be
queried in the modal (TE/TM) basis or in linear (H/V) and circular (R/L)
polarization bases.

Key modules:
- solver: Stack, Steering, FSSSolver and the observer interface
- builder: AnalysisConfig and the fluent SolverBuilder
- layers, sheets, lattice: stack descriptors and meshing of simple elements
- modes, blocks, fill, algorithm, rwg: numerical core
- utils: GSM cascade, propagation and translation
- polarization, outputs: basis changes and the output query surface
- archive: storage of results keyed by analysis point
- observers: console and tqdm progress reporting
"""
from . import constants
from . import exceptions
from . import lattice
from . import layers
from . import sheets
from . import rwg
from . import modes
from . import blocks
from . import fill
from . import algorithm
from . import utils
from . import results
from . import archive
from . import polarization
from . import outputs
from . import builder
from . import solver
from . import observers

from .constants import Precision, SheetClass
from .exceptions import ConfigurationError, CutoffError, SingularMatrixError
from .lattice import Lattice
from .layers import Layer
from .sheets import Sheet, TriangleMesh, nullsheet, rectangular_patch, rectangular_strip
from .results import GSM, Result
from .archive import ResultArchive
from .outputs import OutputBuilder, extract_result, extract_result_file, getsijmn, parse_outputs
from .builder import AnalysisConfig, SolverBuilder
from .solver import FSSSolver, Stack, Steering, create_solver, get_solver_builder

__version__ = "0.1.0"
