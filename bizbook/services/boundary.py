from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from pydantic import ValidationError

from bizbook.errors import LedgerError, StoreError
from bizbook.models.common import ActionResult

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "A database error occurred; the operation could not be completed."


def _format_validation(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid data: " + "; ".join(parts)


def action(fn: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
    """
    Frontière d'action: l'opération lève, l'appelant reçoit toujours un ActionResult.
    - ValidationError pydantic -> message listant les champs invalides
    - LedgerError -> message tel quel
    - toute autre exception -> journalisée, message générique
    """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> ActionResult:
        try:
            return fn(*args, **kwargs)
        except ValidationError as e:
            logger.info("%s rejected: invalid input (%d errors)", fn.__qualname__, e.error_count())
            return ActionResult.fail(_format_validation(e))
        except StoreError as e:
            logger.error("%s failed in the store: %s", fn.__qualname__, e)
            return ActionResult.fail(str(e) or GENERIC_FAILURE)
        except LedgerError as e:
            logger.info("%s rejected: %s", fn.__qualname__, e)
            return ActionResult.fail(str(e))
        except Exception:
            logger.exception("%s failed", fn.__qualname__)
            return ActionResult.fail(GENERIC_FAILURE)

    return wrapper
