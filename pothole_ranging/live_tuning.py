# live_tuning.py
"""Hot reload of ``runtime_params.json`` for bench tuning while video plays."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

KNOWN_KEYS = frozenset(
    {
        "contact_bias_px",
        "d_min_m",
        "d_max_m",
        "x_max_m",
        "absolute_weight",
        "bias_learn_rate",
        "stationary",
        "accel_reliable",
        "stream_enabled",
    }
)


class _Stamp(NamedTuple):
    mtime: float
    size: int


class RuntimeParamWatcher:
    """
    Keeps the last good JSON object read from ``path``. A file that vanishes,
    fails to parse or holds something other than an object leaves the
    previous parameters in place.
    """

    def __init__(self, path: str | Path = "runtime_params.json") -> None:
        self.path = Path(path).expanduser().resolve()
        self.params: Dict[str, Any] = {}
        self._stamp: Optional[_Stamp] = None

        print(f"[Runtime] Watching {self.path}")
        if self.path.exists():
            self._reload()
        else:
            print(f"[Runtime] No {self.path.name} yet, live tuning starts once it exists")

    def _current_stamp(self) -> Optional[_Stamp]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return _Stamp(st.st_mtime, st.st_size)

    def _reload(self) -> None:
        # A broken file is parsed once per change
        self._stamp = self._current_stamp()
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            print(f"[Runtime] {self.path.name} vanished, keeping previous values")
            return
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[Runtime] Cannot use {self.path.name}: {exc}")
            return

        if not isinstance(loaded, dict):
            print(f"[Runtime] {self.path.name} must hold a JSON object, ignoring it")
            return
        unknown = sorted(set(loaded) - KNOWN_KEYS)
        if unknown:
            print(f"[Runtime] Unknown keys ignored: {', '.join(unknown)}")
        self.params = loaded

    # ------------------------------------------------------------------
    #   Public API
    # ------------------------------------------------------------------
    def maybe_reload(self) -> bool:
        """True when the file changed (new size, or mtime moved ≥ 1 s) and was re-read."""
        stamp = self._current_stamp()
        if stamp is None:
            return False
        old = self._stamp
        if old is not None and stamp.size == old.size and stamp.mtime - old.mtime < 1.0:
            return False
        self._reload()
        return True

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.params.get(key, default)

    def get_float(self, key: str) -> float | None:
        """Numeric lookup; booleans and strings count as absent."""
        val = self.params.get(key)
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            return None
        return float(val)

    def get_bool(self, key: str) -> bool | None:
        val = self.params.get(key)
        return val if isinstance(val, bool) else None
