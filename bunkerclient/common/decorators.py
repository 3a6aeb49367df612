"""Session guard decorators for remote signer operations.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

from bunkerclient.common.exceptions import SessionClosed

logger = logging.getLogger(__name__)


def requires_open_session(
    session_attr: str = "session",
    error_message: str = "Remote signer session is closed",
) -> Callable:
    """Decorator that rejects a coroutine method when its session is not usable.

    Args:
        session_attr: Name of the attribute on ``self`` holding the session
        error_message: Message carried by the raised SessionClosed

    Returns:
        Decorated coroutine function that raises SessionClosed instead of
        running against a closed or failed session
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            session = getattr(self, session_attr, None)
            if session is None or not session.is_usable():
                logger.debug("%s rejected: %s", func.__name__, error_message)
                raise SessionClosed(error_message)
            return await func(self, *args, **kwargs)

        return wrapper

    return decorator
