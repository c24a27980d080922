import logging
from typing import Callable, List

from kubeport.models import TunnelStatus

StatusListener = Callable[[TunnelStatus], None]
Unsubscribe = Callable[[], None]


class StatusPublisher:
    """Ordered, synchronous fan-out of status snapshots to subscribers."""

    def __init__(self) -> None:
        self._listeners: List[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, status: TunnelStatus) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logging.exception(f"Status listener failed for {status.id}")

    def clear(self) -> None:
        self._listeners.clear()
