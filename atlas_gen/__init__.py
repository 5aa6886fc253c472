"""
atlas_gen - Precomputed curve-shape atlases for seeding synthesis.

Main components:
    - AtlasConfig: generation settings (size, resolution, harmonics, open/closed)
    - Atlas: columnar store with generate, fetch, merge and .npz read/write
    - AtlasShapeError: incompatible atlases or malformed archives

    Sampling functions:
        - sample_codes(): uniform codes inside a linkage type's bounds
        - evaluate_code(): accepted circuit/branch entries of one draw
"""
from __future__ import annotations

from atlas_gen.atlas import Atlas
from atlas_gen.atlas import AtlasShapeError
from atlas_gen.sampling import AtlasConfig
from atlas_gen.sampling import AtlasEntry
from atlas_gen.sampling import evaluate_code
from atlas_gen.sampling import sample_codes

__all__ = [
    'Atlas',
    'AtlasConfig',
    'AtlasEntry',
    'AtlasShapeError',
    'evaluate_code',
    'sample_codes',
]
