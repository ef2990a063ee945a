"""Serve classifier forward passes to async request handlers.

    request handler -> ClassifierPool.forward(name, image)
                    -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N)
                    -> FaceAttributeClassifier.forward_image

The pool owns the classifiers it serves and closes them on shutdown. Each
forward pass stays synchronous inside a worker thread; the semaphore only
bounds how many run at once. ONNX Runtime sessions accept concurrent
``run`` calls, so one classifier per attribute is shared by all workers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from faceattrs.errors import UseAfterDispose

if TYPE_CHECKING:
    from collections.abc import Mapping

    import numpy as np
    from numpy.typing import NDArray

    from faceattrs.config import Settings
    from faceattrs.ml.classifiers import FaceAttributeClassifier
    from faceattrs.ml.planes import ColorOrder

logger = logging.getLogger(__name__)


class ClassifierPool:
    """Bounded-concurrency access to a fixed set of named classifiers."""

    def __init__(self, settings: Settings, classifiers: Mapping[str, FaceAttributeClassifier]) -> None:
        self.queue_timeout = settings.queue_timeout
        self._classifiers = dict(classifiers)
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="faceattrs-forward",
        )
        self._running = 0
        self._waiting = 0
        self._counter_lock = threading.Lock()

    def get(self, name: str) -> FaceAttributeClassifier:
        """Return a ready classifier.

        Raises:
            KeyError: If no classifier is registered under ``name``.
            UseAfterDispose: If the classifier has been closed.
        """
        classifier = self._classifiers[name]
        if classifier.closed:
            raise UseAfterDispose(f"{name} classifier is closed")
        return classifier

    async def forward(
        self,
        name: str,
        image: NDArray[np.generic],
        color_order: ColorOrder = "bgr",
    ) -> NDArray[np.float32]:
        """Run classifier ``name`` on an interleaved image in a worker thread.

        Raises:
            TimeoutError: If no worker frees up within ``queue_timeout``.
            UseAfterDispose: If the classifier has been closed.
            InvalidInputShape, InferenceError: Propagated from the classifier.
        """
        classifier = self.get(name)

        with self._counter_lock:
            self._waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.queue_timeout)
        except TimeoutError:
            logger.warning("No %s worker free after %.1fs", name, self.queue_timeout)
            raise
        finally:
            with self._counter_lock:
                self._waiting -= 1

        with self._counter_lock:
            self._running += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, classifier.forward_image, image, color_order)
        finally:
            self._slots.release()
            with self._counter_lock:
                self._running -= 1

    @property
    def loaded_models(self) -> list[str]:
        """Names of classifiers that are still open."""
        return sorted(name for name, classifier in self._classifiers.items() if not classifier.closed)

    @property
    def active_count(self) -> int:
        """Number of forward passes currently running."""
        with self._counter_lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a worker."""
        with self._counter_lock:
            return self._waiting

    def shutdown(self) -> None:
        """Wait for running forward passes, then close every classifier."""
        self._executor.shutdown(wait=True)
        for classifier in self._classifiers.values():
            classifier.close()
        logger.info("Classifier pool shut down")
