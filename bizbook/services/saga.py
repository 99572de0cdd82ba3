from __future__ import annotations

import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


class Compensation:
    """
    Journal d'annulation pour les opérations à plusieurs écritures.
    Chaque écriture réussie enregistre son inverse; en cas d'échec les inverses
    sont rejoués du plus récent au plus ancien, puis l'exception d'origine remonte.
    La reprise reste au mieux: un inverse qui échoue est journalisé et les suivants sont tentés.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._undo: List[Tuple[str, Callable[[], Any]]] = []
        self.failed_undos: List[str] = []

    def record(self, description: str, undo: Callable[[], Any]) -> None:
        self._undo.append((description, undo))

    @property
    def steps(self) -> int:
        return len(self._undo)

    def rollback(self) -> None:
        while self._undo:
            description, undo = self._undo.pop()
            try:
                undo()
            except Exception:
                logger.exception("%s: could not undo %s", self.label, description)
                self.failed_undos.append(description)
        if self.failed_undos:
            logger.error("%s left partially applied: %s", self.label, ", ".join(self.failed_undos))

    def __enter__(self) -> "Compensation":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self._undo:
            logger.warning("%s failed after %d write(s), compensating", self.label, len(self._undo))
            self.rollback()
        return False
