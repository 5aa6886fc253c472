"""
fourbar_tools - Four-bar linkage kinematics and path synthesis.

Key components:
  - NormFourBar / FourBar: planar linkages (intrinsic / placed)
  - SNormFourBar / SFourBar: spherical linkages
  - MNormFourBar / MFourBar: planar linkages with a coupler-attached direction
  - classify / angle_bound: Grashof classification and input-angle domains
  - Efd: elliptical Fourier descriptor with pose (GeoVar)
  - PathSyn / MotionSyn: synthesis objectives consumed by the optimizers

Example usage:
    from fourbar_tools import FourBar, Mode, PathSyn

    fb = FourBar.example()
    curve = fb.curve(180)

    syn = PathSyn.from_curve(curve, Mode.CLOSED, 'planar')
    err, placed = syn.fitness(trial_vector)
"""
from __future__ import annotations

from fourbar_tools.efd import Efd
from fourbar_tools.efd import GeoVar
from fourbar_tools.efd import MotionSig
from fourbar_tools.linkage import FourBar
from fourbar_tools.linkage import get_linkage_type
from fourbar_tools.linkage import MFourBar
from fourbar_tools.linkage import MNormFourBar
from fourbar_tools.linkage import NormFourBar
from fourbar_tools.linkage import SFourBar
from fourbar_tools.linkage import SNormFourBar
from fourbar_tools.stat import angle_bound
from fourbar_tools.stat import AngleBound
from fourbar_tools.stat import classify
from fourbar_tools.stat import FourBarTy
from fourbar_tools.stat import Stat
from fourbar_tools.synthesis import Mode
from fourbar_tools.synthesis import MotionSyn
from fourbar_tools.synthesis import PathSyn
from fourbar_tools.synthesis_types import GenerationReport
from fourbar_tools.synthesis_types import SynthesisResult

__all__ = [
    # Linkages
    'NormFourBar',
    'FourBar',
    'SNormFourBar',
    'SFourBar',
    'MNormFourBar',
    'MFourBar',
    'get_linkage_type',
    # Classification
    'Stat',
    'AngleBound',
    'FourBarTy',
    'classify',
    'angle_bound',
    # Shape descriptor
    'Efd',
    'GeoVar',
    'MotionSig',
    # Synthesis
    'Mode',
    'PathSyn',
    'MotionSyn',
    'GenerationReport',
    'SynthesisResult',
]
