from __future__ import annotations

import threading

from .errors import PipelineCancelled


class CancelToken:
    """
    Cooperative cancellation. Checked only at stage and deploy-step boundaries,
    never in the middle of an external call.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        if self._event.is_set():
            raise PipelineCancelled(f"Cancelled before {where}: {self.reason}")
