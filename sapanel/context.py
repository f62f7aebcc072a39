"""
Per request context:
- the channel a request came in on (panel ui or external api key)
- the output view used by the serializer visibility rules
- the deadline / cancellation signal checked by the data provider
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import StoreUnavailableError


class Channel(str, Enum):
    # the panel ui, session authenticated
    INTERNAL = "internal"
    # external api clients, authenticated with a scoped api key
    EXTERNAL = "external"


class OutputView(str, Enum):
    INDEX = "index"
    # the index in the grid (card) layout, requested with view=grid
    GRID = "grid"
    DETAIL = "detail"
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class OutputContext:
    channel: Channel = Channel.INTERNAL
    view: OutputView = OutputView.DETAIL

    @property
    def is_external(self) -> bool:
        return self.channel == Channel.EXTERNAL


INTERNAL_DETAIL = OutputContext(Channel.INTERNAL, OutputView.DETAIL)
INTERNAL_INDEX = OutputContext(Channel.INTERNAL, OutputView.INDEX)
EXTERNAL_DETAIL = OutputContext(Channel.EXTERNAL, OutputView.DETAIL)
EXTERNAL_INDEX = OutputContext(Channel.EXTERNAL, OutputView.INDEX)


@dataclass
class RequestContext:
    """
    Deadline and cancellation for the store calls of one request

    :param deadline: time.monotonic() value after which store calls are aborted
    :param cancel_event: set by the caller to abort the remaining store calls
    """

    channel: Channel = Channel.INTERNAL
    deadline: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float, channel: Channel = Channel.INTERNAL) -> RequestContext:
        return cls(channel=channel, deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, operation: str = "", resource: str = None) -> None:
        """
        :raises StoreUnavailableError: when the request was cancelled or the deadline has passed
        """
        if self.cancelled:
            raise StoreUnavailableError(f"{operation} cancelled").with_context(resource=resource, operation=operation)
        if self.expired:
            raise StoreUnavailableError(f"{operation} deadline exceeded").with_context(resource=resource, operation=operation)
