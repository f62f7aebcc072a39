# -*- coding: utf-8 -*-

"""Transaction helpers used by the data provider.

- ``atomic()``: one transactional boundary, the session is committed once by the
  outermost block and rolled back when an exception leaves it
- ``compensating_delete()``: fallback for stores without transactions, removes an
  already committed primary record after a dependent write failed

Nesting state is kept in a ContextVar so concurrent requests (threads) don't share it.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError

import sapanel
from .errors import InconsistentStateError


@dataclass(frozen=True)
class _TxState:
    depth: int = 0


_TX_STATE: ContextVar[_TxState] = ContextVar("sapanel_tx_state", default=_TxState())


def in_transaction() -> bool:
    """Return True inside an ``atomic()`` block."""
    return _TX_STATE.get().depth > 0


@contextmanager
def atomic(session: Any) -> Iterator[Any]:
    """
    Run the enclosed writes as one unit of work

    Nested blocks join the outer one: only the outermost block commits or rolls back.

    :param session: SQLAlchemy session
    """
    state = _TX_STATE.get()
    outermost = state.depth == 0
    token = _TX_STATE.set(_TxState(depth=state.depth + 1))
    try:
        yield session
        if outermost:
            session.commit()
    except Exception:
        if outermost:
            sapanel.log.debug("rolling back transaction")
            session.rollback()
        raise
    finally:
        _TX_STATE.reset(token)


def compensating_delete(session: Any, model: Any, record_id: Any, resource: str = None) -> None:
    """
    Remove the committed `model` instance with `record_id`.
    The compensation completes before the caller reports the original error,
    so no orphan survives a failed create.

    :raises InconsistentStateError: when the instance could not be removed
    """
    sapanel.log.warning(f"compensating delete of {resource} {record_id}")
    try:
        session.rollback()
        instance = session.get(model, record_id)
        if instance is not None:
            session.delete(instance)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise InconsistentStateError(f"failed to remove {resource} {record_id} after a dependent write failed: {exc}").with_context(
            resource=resource, record_id=record_id, operation="create"
        ) from exc
