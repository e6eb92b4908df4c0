# posinvoice/database.py
import asyncio
import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .billing import Cart
from .errors import StoreWriteFailed
from .logger import get_logger
from .models import ShopProfile

# Key-value storage for products, sales, customers and the shop profile,
# plus the in-memory state of open billing sessions (carts) and locks.

log = get_logger("store")

_MISSING = object()


def product_key(product_id: str) -> str:
    return f"product:{product_id}"


def sale_key(sale_id: str) -> str:
    return f"sale:{sale_id}"


def customer_key(customer_id: str) -> str:
    return f"customer:{customer_id}"


def idempotency_key(key: str) -> str:
    return f"idempotency:{key}"


PROFILE_KEY = "profile"


class KVStore:
    def __init__(self, data_file: Optional[str] = None):
        self._data: Dict[str, Any] = {}
        self.data_file = Path(data_file) if data_file else None
        if self.data_file is not None:
            self._data = self._read_json()

    # ---------------------------
    # File persistence
    # ---------------------------
    def _read_json(self) -> Dict[str, Any]:
        # Missing or empty file -> empty store
        path = self.data_file
        if not path.exists():
            return {}
        text = path.read_text(encoding="utf-8").strip()
        if text == "":
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            log.warning("Data file %s is not valid JSON, starting empty", path)
            return {}
        if not isinstance(data, dict):
            log.warning("Data file %s has unexpected layout, starting empty", path)
            return {}
        return data

    def _write_json(self) -> None:
        if self.data_file is None:
            return
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.data_file.with_suffix(self.data_file.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.data_file)

    # ---------------------------
    # Reads
    # ---------------------------
    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def get_by_prefix(self, prefix: str) -> List[Any]:
        return [copy.deepcopy(v) for k, v in self._data.items() if k.startswith(prefix)]

    def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    # ---------------------------
    # Writes
    # ---------------------------
    def set(self, key: str, value: Any) -> None:
        self.commit({key: value})

    def delete(self, key: str) -> None:
        self.commit(deletes=[key])

    def commit(self, writes: Optional[Dict[str, Any]] = None, deletes: Iterable[str] = ()) -> None:
        """
        Apply all writes and deletes, or none of them.

        On any failure (including the file flush) the touched keys are put
        back to their previous values.
        """
        writes = writes or {}
        deletes = list(deletes)
        touched = list(writes) + deletes
        previous = {k: self._data.get(k, _MISSING) for k in touched}
        try:
            for k, v in writes.items():
                self._data[k] = copy.deepcopy(v)
            for k in deletes:
                self._data.pop(k, None)
            self._write_json()
        except Exception as exc:
            for k, v in previous.items():
                if v is _MISSING:
                    self._data.pop(k, None)
                else:
                    self._data[k] = v
            log.error("Commit of %d key(s) failed and was rolled back: %s", len(touched), exc)
            raise StoreWriteFailed(type(exc).__name__) from exc

    def clear(self, prefixes: Optional[Iterable[str]] = None) -> None:
        if prefixes is None:
            doomed = list(self._data)
        else:
            prefixes = tuple(prefixes)
            doomed = [k for k in self._data if k.startswith(prefixes)]
        self.commit(deletes=doomed)


class PosStore:
    """Owns the key-value store, open carts and the per-key locks."""

    def __init__(self, kv: Optional[KVStore] = None, default_profile: Optional[ShopProfile] = None):
        self.kv = kv if kv is not None else KVStore()
        self.default_profile = default_profile or ShopProfile()
        self.carts: Dict[str, Cart] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def cart(self, session_id: str) -> Cart:
        if session_id not in self.carts:
            self.carts[session_id] = Cart(session_id)
        return self.carts[session_id]

    def reset(self) -> None:
        self.kv.clear()
        self.carts.clear()
        self._locks.clear()
