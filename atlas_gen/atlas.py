"""
atlas.py - Precomputed nearest-neighbor dataset of linkage curve shapes.

An Atlas is three parallel, row-aligned arrays:
  - fb:   (n, CODE_WIDTH) float64 intrinsic linkage codes
  - stat: (n,) uint8 circuit/branch tags
  - efd:  (n, harmonic, 2 * DIM) float64 normalized descriptors

Rows are appended only during generation and dropped only by merge/clear.

Key operations:
  - Atlas.generate(): parallel rejection sampling up to an exact size
  - fetch() / fetch_1st(): k nearest shapes, placed onto the target's pose
  - fetch_raw(): nearest codes for seeding an optimizer population
  - merge(): row-wise concatenation with shape checks
  - write() / read(): compressed .npz archive with schema checks on read

Example:
    >>> atlas = Atlas.generate(AtlasConfig(size=1024, res=180, harmonic=10, seed=0))
    >>> atlas.write('planar_closed.npz')
    >>> for dist, fb in atlas.fetch(target_curve, k=5):
    ...     print(dist, fb)
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from collections.abc import Iterable

import numpy as np

from atlas_gen.sampling import AtlasConfig
from atlas_gen.sampling import AtlasEntry
from atlas_gen.sampling import evaluate_code
from atlas_gen.sampling import sample_codes
from fourbar_tools.curve_utils import get_valid_part
from fourbar_tools.efd import Efd
from fourbar_tools.efd import is_open_coeffs
from fourbar_tools.linkage import get_linkage_type
from fourbar_tools.parallel import parallel_map
from fourbar_tools.stat import Stat

logger = logging.getLogger(__name__)

ARCHIVE_KEYS = ('fb', 'stat', 'efd')

# Valid values of the stat column
STAT_TAGS = np.array([int(stat) for stat in Stat], dtype=np.uint8)

# Smallest resolution used to re-trace a fetched entry before placing it
DEFAULT_FETCH_RES = 180


class AtlasShapeError(ValueError):
    """Incompatible atlas widths/harmonics, or a malformed archive."""


class _EntryBuffer:
    """Lock-guarded accumulation buffer with a size cap."""

    def __init__(self, size: int):
        self.size = size
        self._entries: list[AtlasEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def push(self, entry: AtlasEntry) -> bool:
        """Append unless full; returns False once the cap is reached."""
        with self._lock:
            if len(self._entries) >= self.size:
                return False
            self._entries.append(entry)
            return True

    def take(self) -> list[AtlasEntry]:
        with self._lock:
            return self._entries[:self.size]


class Atlas:
    """
    Columnar dataset of (code, stat, descriptor) rows for one linkage type.

    Args:
        linkage_type: 'planar', 'spherical', 'motion' or a normalized linkage class
        fb: Codes, shape (n, CODE_WIDTH)
        stat: Tags, shape (n,)
        efd: Descriptors, shape (n, harmonic, 2 * DIM)
    """

    def __init__(self, linkage_type: str | type = 'planar', fb=None, stat=None, efd=None):
        self.linkage_cls = get_linkage_type(linkage_type)
        width = self.linkage_cls.CODE_WIDTH
        dim = self.linkage_cls.DIM
        self.fb = np.empty((0, width)) if fb is None else np.asarray(fb, dtype=np.float64)
        self.stat = np.empty(0, dtype=np.uint8) if stat is None else np.asarray(stat, dtype=np.uint8)
        self.efd = np.empty((0, 0, 2 * dim)) if efd is None else np.asarray(efd, dtype=np.float64)
        self._check_schema()

    def _check_schema(self) -> None:
        width = self.linkage_cls.CODE_WIDTH
        dim = self.linkage_cls.DIM
        if self.fb.ndim != 2 or self.fb.shape[1] != width:
            raise AtlasShapeError(f'fb must have shape (n, {width}), got {self.fb.shape}')
        if self.efd.ndim != 3 or self.efd.shape[2] != 2 * dim:
            raise AtlasShapeError(f'efd must have shape (n, harmonic, {2 * dim}), got {self.efd.shape}')
        if self.stat.ndim != 1:
            raise AtlasShapeError(f'stat must be 1-D, got {self.stat.shape}')
        if not (len(self.fb) == len(self.stat) == len(self.efd)):
            raise AtlasShapeError(
                f'Row counts differ: fb={len(self.fb)}, stat={len(self.stat)}, efd={len(self.efd)}',
            )
        bad = np.setdiff1d(self.stat, STAT_TAGS)
        if len(bad):
            raise AtlasShapeError(f'stat holds unknown circuit/branch tags: {bad.tolist()}')

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.fb)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Atlas):
            return NotImplemented
        return (
            self.linkage_cls is other.linkage_cls
            and np.array_equal(self.fb, other.fb)
            and np.array_equal(self.stat, other.stat)
            and np.array_equal(self.efd, other.efd)
        )

    def __repr__(self) -> str:
        return f'Atlas({self.linkage_cls.__name__}, n={len(self)}, harmonic={self.harmonic})'

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def harmonic(self) -> int:
        return self.efd.shape[1]

    def fb_norm(self, index: int):
        """Normalized linkage stored in row `index`."""
        return self.linkage_cls.from_vectorized(self.fb[index], int(self.stat[index]))

    def fb_norm_iter(self):
        for i in range(len(self)):
            yield self.fb_norm(i)

    def efd_iter(self):
        for coeffs in self.efd:
            yield Efd.from_coeffs(coeffs)

    def is_open_iter(self) -> np.ndarray:
        """Per-row flag: descriptor was fitted from an open curve."""
        return is_open_coeffs(self.efd)

    def copy(self) -> Atlas:
        return Atlas(self.linkage_cls, self.fb.copy(), self.stat.copy(), self.efd.copy())

    def clear(self) -> None:
        """Drop every row (the descriptor harmonic is kept)."""
        self.fb = self.fb[:0].copy()
        self.stat = self.stat[:0].copy()
        self.efd = self.efd[:0].copy()

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    @classmethod
    def generate(
        cls,
        config: AtlasConfig | None = None,
        linkage_type: str | type = 'planar',
        n_workers: int | None = None,
        callback: Callable[[int], None] | None = None,
        **kwargs,
    ) -> Atlas:
        """
        Generate an atlas by parallel rejection sampling.

        Each batch draws about half of the missing entries (each draw may
        yield several circuit/branch entries), splits them over the workers
        and appends accepted entries to one shared buffer. Batches repeat
        until the buffer is full; the result is truncated to exactly
        config.size rows.

        Args:
            config: Generation settings (defaults to AtlasConfig())
            linkage_type: Linkage type to sample
            n_workers: Worker threads; None or 1 runs inline and is reproducible
            callback: Called with the accepted count after every batch
            **kwargs: Override config fields (size, res, harmonic, is_open, seed)

        Returns:
            Atlas with config.size rows, fewer only if config.max_draws ran out
        """
        if config is None:
            config = AtlasConfig(**kwargs)
        elif kwargs:
            config = AtlasConfig(**{**config.__dict__, **kwargs})
        linkage_cls = get_linkage_type(linkage_type)

        buffer = _EntryBuffer(config.size)
        seed_seq = np.random.SeedSequence(config.seed)
        n_chunks = max(1, n_workers or 1)
        draws = 0
        batch = 0

        logger.info(
            f'Generating {linkage_cls.__name__} atlas: size={config.size}, res={config.res}, '
            f'harmonic={config.harmonic}, open={config.is_open}',
        )

        def run_chunk(args) -> None:
            chunk_seed, n = args
            rng = np.random.default_rng(chunk_seed)
            for code in sample_codes(rng, linkage_cls, n):
                for entry in evaluate_code(linkage_cls, code, config):
                    if not buffer.push(entry):
                        return

        while len(buffer) < config.size and draws < config.max_draws:
            n = max(1, (config.size - len(buffer)) // 2)
            n = min(n, config.max_draws - draws)
            sizes = [len(part) for part in np.array_split(np.arange(n), n_chunks) if len(part)]
            jobs = list(zip(seed_seq.spawn(len(sizes)), sizes))
            parallel_map(run_chunk, jobs, n_workers)
            draws += n
            batch += 1
            logger.debug(f'  Batch {batch}: draws={draws}, accepted={len(buffer)}')
            if callback is not None:
                callback(len(buffer))

        entries = buffer.take()
        if len(entries) < config.size:
            logger.warning(f'Atlas generation stopped after {draws} draws with {len(entries)}/{config.size} entries')
        logger.info(f'  Atlas ready: {len(entries)} entries from {draws} draws')
        return cls._from_entries(linkage_cls, entries, config.harmonic)

    @classmethod
    def _from_entries(cls, linkage_cls: type, entries: list[AtlasEntry], harmonic: int) -> Atlas:
        width = linkage_cls.CODE_WIDTH
        dim = linkage_cls.DIM
        if not entries:
            return cls(linkage_cls, np.empty((0, width)), np.empty(0, np.uint8), np.empty((0, harmonic, 2 * dim)))
        return cls(
            linkage_cls,
            np.stack([e.code for e in entries]),
            np.array([int(e.stat) for e in entries], dtype=np.uint8),
            np.stack([e.coeffs for e in entries]),
        )

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def _target(self, target, is_open: bool | None):
        """Resolve (target descriptor at atlas harmonic, trace resolution, openness)."""
        if is_open is None:
            is_open = bool(self.is_open_iter()[0]) if len(self) else False
        if isinstance(target, Efd):
            return target, DEFAULT_FETCH_RES, is_open
        curve = get_valid_part(target)
        return Efd.fit(curve, self.harmonic, is_open=is_open), max(len(curve), DEFAULT_FETCH_RES), is_open

    def distances(self, target_efd: Efd) -> np.ndarray:
        """Descriptor distance from every row to the target."""
        coeffs = np.zeros(self.efd.shape[1:])
        h = min(self.harmonic, target_efd.harmonic)
        coeffs[:h] = target_efd.coeffs[:h]
        diff = (self.efd - coeffs).reshape(len(self), -1)
        dist = np.linalg.norm(diff, axis=1)
        if target_efd.harmonic > self.harmonic:
            dist = np.hypot(dist, np.linalg.norm(target_efd.coeffs[self.harmonic:]))
        return dist

    def _nearest(self, dist: np.ndarray, k: int) -> np.ndarray:
        if k < 1:
            raise ValueError(f'k must be positive, got {k}')
        if k == 1:
            return np.array([int(np.argmin(dist))])
        return np.argsort(dist, kind='stable')[:k]

    def _pick(self, index: int, target_efd: Efd, res: int, is_open: bool):
        """Place row `index` onto the target's pose."""
        norm = self.fb_norm(index)
        curve = norm.curve(res)
        efd = Efd.try_fit(curve, self.harmonic, is_open=is_open) if len(curve) > 1 else None
        if efd is None:
            return norm.denormalize()
        return norm.trans_denorm(efd.geo.to(target_efd.geo))

    def fetch(self, target, is_open: bool | None = None, k: int = 1) -> list[tuple]:
        """
        The k nearest entries to a target, closest first.

        Args:
            target: Target curve (n, DIM) or a fitted Efd
            is_open: Fit the target as an open curve; inferred from the atlas when None
            k: Number of results

        Returns:
            List of (distance, placed linkage), aligned to the target pose.
            Empty when the atlas is empty.
        """
        if self.is_empty:
            return []
        target_efd, res, is_open = self._target(target, is_open)
        dist = self.distances(target_efd)
        return [
            (float(dist[i]), self._pick(int(i), target_efd, res, is_open))
            for i in self._nearest(dist, k)
        ]

    def fetch_1st(self, target, is_open: bool | None = None):
        """Nearest entry as (distance, placed linkage), None for an empty atlas."""
        found = self.fetch(target, is_open, 1)
        return found[0] if found else None

    def fetch_raw(self, target, is_open: bool | None = None, size: int = 1):
        """
        Nearest entries for seeding an optimizer.

        Returns:
            (first, pool): first is (distance, placed linkage) of the best
            row or None when empty; pool lists (distance, normalized linkage)
            of the `size` nearest rows, closest first.
        """
        if self.is_empty:
            return None, []
        target_efd, res, is_open = self._target(target, is_open)
        dist = self.distances(target_efd)
        order = self._nearest(dist, size)
        pool = [(float(dist[i]), self.fb_norm(int(i))) for i in order]
        first = int(order[0])
        return (float(dist[first]), self._pick(first, target_efd, res, is_open)), pool

    # -------------------------------------------------------------------------
    # Merge and persistence
    # -------------------------------------------------------------------------

    def merge(self, other: Atlas) -> Atlas:
        """
        Row-wise concatenation; self's rows come first.

        Raises:
            AtlasShapeError: Code widths, descriptor dimensions or harmonics differ
        """
        if self.fb.shape[1] != other.fb.shape[1] or self.efd.shape[2] != other.efd.shape[2]:
            raise AtlasShapeError(
                f'Cannot merge atlases of widths {self.fb.shape[1]}/{self.efd.shape[2]} '
                f'and {other.fb.shape[1]}/{other.efd.shape[2]}',
            )
        if other.is_empty:
            return self.copy()
        if self.is_empty:
            return Atlas(self.linkage_cls, other.fb.copy(), other.stat.copy(), other.efd.copy())
        if self.harmonic != other.harmonic:
            raise AtlasShapeError(f'Cannot merge harmonics {self.harmonic} and {other.harmonic}')
        return Atlas(
            self.linkage_cls,
            np.concatenate([self.fb, other.fb]),
            np.concatenate([self.stat, other.stat]),
            np.concatenate([self.efd, other.efd]),
        )

    @classmethod
    def merge_all(cls, atlases: Iterable[Atlas], linkage_type: str | type = 'planar') -> Atlas:
        merged = cls(linkage_type)
        for atlas in atlases:
            merged = merged.merge(atlas)
        return merged

    def write(self, file) -> None:
        """Write the three arrays to a compressed .npz archive (path or binary file)."""
        np.savez_compressed(file, fb=self.fb, stat=self.stat, efd=self.efd)
        logger.info(f'Wrote atlas with {len(self)} entries')

    @classmethod
    def read(cls, file, linkage_type: str | type = 'planar') -> Atlas:
        """
        Read an archive written by write().

        Raises:
            AtlasShapeError: Not an .npz archive, missing arrays, unknown stat tags
                or widths not matching the linkage type
            OSError: Archive cannot be opened
        """
        try:
            data = np.load(file, allow_pickle=False)
        except ValueError as e:
            raise AtlasShapeError(f'Not an atlas archive: {e}') from e
        if not isinstance(data, np.lib.npyio.NpzFile):
            raise AtlasShapeError(f'Not an atlas archive: expected .npz arrays, got {type(data).__name__}')
        with data:
            missing = [key for key in ARCHIVE_KEYS if key not in data.files]
            if missing:
                raise AtlasShapeError(f'Archive is missing arrays: {missing}')
            fb, stat, efd = (data[key] for key in ARCHIVE_KEYS)
        atlas = cls(linkage_type, fb, stat, efd)
        logger.info(f'Read atlas with {len(atlas)} entries')
        return atlas
