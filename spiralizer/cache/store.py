"""
Read-only precomputed spiral stores.

Two formats are supported:
- A pickled key -> CacheEntry mapping (optionally xz-compressed), loaded
  wholesale into memory
- An indexed SQLite table queried by exact cache key through a connection
  held open for the session
"""

import lzma
import pickle
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple, Union

import structlog
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.errors import CacheIOError
from .entry import CacheEntry
from .keys import SpiralParams
from .models import Base, SpiralCacheRecord

logger = structlog.get_logger()

SQLITE_FILENAME = "spiral_cache.sqlite"
PICKLE_FILENAMES = ("spiral_cache.pkl.xz", "spiral_cache.pkl")
SQLITE_SUFFIXES = (".sqlite", ".sqlite3", ".db")


class PrecomputedStore(ABC):
    """Read-only key -> CacheEntry store shared by all sessions."""

    kind = "none"

    def __init__(self, path: Path):
        self.path = Path(path)

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Exact-key lookup; None on miss."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    def close(self) -> None:
        """Release any open resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class PickleStore(PrecomputedStore):
    """Flat pickle file loaded into memory once."""

    kind = "pickle"

    def __init__(self, path: Path):
        super().__init__(path)
        self._entries = self._load(self.path)
        logger.info("Loaded pickle cache", path=str(self.path), entries=len(self._entries))

    @staticmethod
    def _load(path: Path) -> Dict[str, CacheEntry]:
        opener = lzma.open if path.suffix == ".xz" else open
        try:
            with opener(path, "rb") as f:
                entries = pickle.load(f)
        except Exception as e:
            raise CacheIOError(f"Cannot read pickle cache {path}: {e}") from e

        if not isinstance(entries, dict):
            raise CacheIOError(f"Pickle cache {path} does not contain a mapping")
        bad = [key for key, entry in entries.items() if not isinstance(entry, CacheEntry)]
        if bad:
            raise CacheIOError(f"Pickle cache {path} has {len(bad)} entries that are not CacheEntry")
        return entries

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteStore(PrecomputedStore):
    """Indexed SQLite store opened read-only."""

    kind = "sqlite"

    def __init__(self, path: Path):
        super().__init__(path)
        if not self.path.is_file():
            raise CacheIOError(f"SQLite cache not found: {self.path}")

        self._lock = Lock()
        try:
            self.engine = create_engine(
                f"sqlite:///file:{self.path.resolve()}?mode=ro&uri=true",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
            if not inspect(self.engine).has_table(SpiralCacheRecord.__tablename__):
                raise CacheIOError(f"{self.path} has no {SpiralCacheRecord.__tablename__} table")
            self._session = sessionmaker(bind=self.engine)()
        except SQLAlchemyError as e:
            raise CacheIOError(f"Cannot open SQLite cache {self.path}: {e}") from e

        logger.info("Using SQLite cache", path=str(self.path))

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            with self._lock:
                row = (self._session.query(SpiralCacheRecord.data)
                       .filter(SpiralCacheRecord.cache_key == key)
                       .first())
        except SQLAlchemyError as e:
            raise CacheIOError(f"SQLite cache lookup failed: {e}") from e

        if row is None:
            return None
        return CacheEntry.from_blob(row.data)

    def keys_in_range(self, angle_start: Tuple[float, float],
                      angle_end: Tuple[float, float],
                      sample_count: Tuple[int, int]) -> List[str]:
        """Keys whose parameters fall inside inclusive ranges."""
        try:
            with self._lock:
                rows = (self._session.query(SpiralCacheRecord.cache_key)
                        .filter(SpiralCacheRecord.angle_start.between(*angle_start),
                                SpiralCacheRecord.angle_end.between(*angle_end),
                                SpiralCacheRecord.sample_count.between(*sample_count))
                        .order_by(SpiralCacheRecord.angle_start,
                                  SpiralCacheRecord.angle_end,
                                  SpiralCacheRecord.sample_count)
                        .all())
        except SQLAlchemyError as e:
            raise CacheIOError(f"SQLite range query failed: {e}") from e
        return [row.cache_key for row in rows]

    def __len__(self) -> int:
        with self._lock:
            return self._session.query(SpiralCacheRecord).count()

    def close(self) -> None:
        with self._lock:
            self._session.close()
            self.engine.dispose()
        logger.info("Closed SQLite cache", path=str(self.path))


def find_store_file(path: Union[str, Path]) -> Optional[Path]:
    """Locate a store file, preferring SQLite over pickle inside a directory."""
    path = Path(path)
    if path.is_file():
        return path
    if path.is_dir():
        for name in (SQLITE_FILENAME, *PICKLE_FILENAMES):
            candidate = path / name
            if candidate.is_file():
                return candidate
    return None


def open_precomputed_store(path: Union[str, Path]) -> Optional[PrecomputedStore]:
    """
    Open the precomputed store at ``path``.

    Returns None when there is nothing to open.

    Raises:
        CacheIOError: when a store file exists but cannot be read
    """
    store_file = find_store_file(path)
    if store_file is None:
        return None
    if store_file.suffix in SQLITE_SUFFIXES:
        return SQLiteStore(store_file)
    return PickleStore(store_file)


def write_pickle_store(entries: Dict[str, CacheEntry], path: Path) -> Path:
    """Write a pickle store; a ``.xz`` suffix enables compression."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    opener = lzma.open if path.suffix == ".xz" else open
    with opener(path, "wb") as f:
        pickle.dump(entries, f, protocol=pickle.HIGHEST_PROTOCOL)
    return path


@contextmanager
def _writable_session(path: Path):
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autoflush=False, bind=engine)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        engine.dispose()


def write_sqlite_store(rows: Iterable[Tuple[SpiralParams, CacheEntry]], path: Path) -> int:
    """
    Write a fresh SQLite store, replacing any existing file.

    Returns:
        Number of rows written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()

    count = 0
    with _writable_session(path) as session:
        for params, entry in rows:
            session.merge(SpiralCacheRecord(
                cache_key=params.cache_key,
                angle_start=float(params.angle_start),
                angle_end=float(params.angle_end),
                sample_count=int(params.num_points),
                bounded_count=int(entry.bounded_count),
                data=entry.to_blob(),
            ))
            count += 1
    return count
