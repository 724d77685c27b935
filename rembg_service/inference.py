"""
Thin async boundary around onnxruntime.

Sessions are parsed once per model file and kept in a small LRU so the
two U2-Net variants can stay resident without growing without bound.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import onnxruntime as ort

from .errors import InferenceFailure

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Path], Any]


def onnx_session_factory(providers: Optional[List[str]] = None) -> SessionFactory:
    """Build sessions on the requested execution providers (all available by default)."""
    resolved = list(providers) if providers else ort.get_available_providers()

    def create(model_path: Path) -> ort.InferenceSession:
        return ort.InferenceSession(str(model_path), providers=resolved)

    return create


class InferenceInvoker:
    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        cache_size: int = 2,
        timeout_seconds: Optional[float] = None,
    ):
        self._factory = session_factory or onnx_session_factory()
        self._cache_size = max(cache_size, 1)
        self._timeout = timeout_seconds
        self._sessions: "OrderedDict[Path, Any]" = OrderedDict()
        self._lock = Lock()

    def _get_session(self, model_path: Path) -> Any:
        with self._lock:
            session = self._sessions.get(model_path)
            if session is not None:
                self._sessions.move_to_end(model_path)
                return session

            logger.info("Creating inference session for %s", model_path)
            session = self._factory(model_path)
            self._sessions[model_path] = session
            while len(self._sessions) > self._cache_size:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted inference session for %s", evicted)
            return session

    def _run_sync(self, model_path: Path, feeds: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        session = self._get_session(model_path)
        names = [output.name for output in session.get_outputs()]
        values = session.run(names, feeds)
        return dict(zip(names, values))

    async def run(self, model_path: Path, tensor: np.ndarray, input_name: str) -> Dict[str, np.ndarray]:
        """
        Feed `tensor` under `input_name` and return every named output.

        Raises:
            InferenceFailure: on any engine error or timeout. Never retried.
        """
        feeds = {input_name: tensor}
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._run_sync, Path(model_path), feeds),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise InferenceFailure(f"Inference on {model_path} timed out after {self._timeout}s") from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Inference on %s failed: %s", model_path, exc)
            raise InferenceFailure(f"Inference on {model_path} failed: {exc}") from exc
