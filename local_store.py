"""RocksDB-backed key/value adapter standing in for browser local storage."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from rocksdict import Rdict


logger = logging.getLogger(__name__)

DEFAULT_DIRNAME = "local_storage"

_OPEN: Dict[str, "KV"] = {}
_OPEN_LOCK = threading.Lock()


@dataclass
class KV:
    """String key/value store over a ``rocksdict.Rdict``.

    One instance is shared per database path, since RocksDB allows a single
    open handle per process. ``lock`` serialises read-modify-write cycles of
    callers sharing the instance.
    """

    store: Rdict
    path: str
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def get(self, key: str) -> Optional[str]:
        raw = self.store.get(key.encode("utf-8"))
        return raw.decode("utf-8") if raw else None

    def put(self, key: str, value: str) -> None:
        self.store[key.encode("utf-8")] = value.encode("utf-8")

    def remove(self, key: str) -> None:
        encoded = key.encode("utf-8")
        if self.store.get(encoded) is not None:
            del self.store[encoded]

    def items(self) -> Iterator[Tuple[str, str]]:
        for key, value in self.store.items():
            yield key.decode("utf-8"), value.decode("utf-8")

    def close(self) -> None:
        with _OPEN_LOCK:
            if _OPEN.get(self.path) is self:
                del _OPEN[self.path]
        self.store.close()


def open_kv(path: str | os.PathLike[str]) -> KV:
    """Open (or reuse) the store kept in ``<path>/local_storage``."""

    target = os.path.abspath(os.path.join(os.fspath(path), DEFAULT_DIRNAME))
    with _OPEN_LOCK:
        kv = _OPEN.get(target)
        if kv is None:
            os.makedirs(target, exist_ok=True)
            kv = KV(store=Rdict(target), path=target)
            _OPEN[target] = kv
            logger.info("Opened local storage at %s", target)
        return kv


__all__ = ["KV", "open_kv"]
