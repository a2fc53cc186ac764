import logging
from typing import Any, Callable, List, NamedTuple, Optional

from .reconstruction import Reconstruction

logger = logging.getLogger(__name__)

# Sentinel for `ReconstructionStore.replace`: leave the current mirror as is
KEEP_MIRROR: Any = object()

Listener = Callable[[Optional[Reconstruction]], None]


class _Snapshot(NamedTuple):
    reconstruction: Optional[Reconstruction]
    mirror: Optional[Any]


class ReconstructionStore:
    """
    Owns the current reconstruction graph and an optional mirror of it.

    `replace` is the only write path. Graph and mirror are published together
    as one snapshot, so a reader never sees a new graph with an old mirror or
    the other way round.
    """

    def __init__(self, reconstruction: Optional[Reconstruction] = None, mirror: Optional[Any] = None):
        self._snapshot = _Snapshot(reconstruction, mirror)
        self._listeners: List[Listener] = []

    def get(self) -> Optional[Reconstruction]:
        """The current graph, or None if nothing is loaded."""
        return self._snapshot.reconstruction

    @property
    def mirror(self) -> Optional[Any]:
        """The current mirror handle. Its contents are never inspected here."""
        return self._snapshot.mirror

    def snapshot(self) -> _Snapshot:
        """Returns the (reconstruction, mirror) pair as of now."""
        return self._snapshot

    def replace(self, reconstruction: Optional[Reconstruction], mirror: Any = KEEP_MIRROR) -> None:
        """
        Publishes a new graph.

        Args:
            reconstruction: The new graph (None to unload).
            mirror: New mirror handle, None to drop the mirror, or
                    KEEP_MIRROR (default) to keep the current one. A mirror
                    that gets replaced is disposed if it has a `dispose()`.
        """
        old = self._snapshot
        new_mirror = old.mirror if mirror is KEEP_MIRROR else mirror
        self._snapshot = _Snapshot(reconstruction, new_mirror)

        if old.mirror is not None and old.mirror is not new_mirror:
            dispose = getattr(old.mirror, "dispose", None)
            if callable(dispose):
                dispose()

        logger.debug("Reconstruction replaced (%s, mirror %s)",
                     reconstruction, "kept" if new_mirror is old.mirror else
                     ("dropped" if new_mirror is None else "replaced"))

        for listener in list(self._listeners):
            listener(reconstruction)

    def clear(self) -> None:
        self.replace(None, mirror=None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Registers a callback invoked with the new graph after every replace.

        Returns:
            A function that removes the callback again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
