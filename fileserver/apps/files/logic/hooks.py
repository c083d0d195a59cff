"""Dispatch of user-supplied collection hooks.

Each extension point is one :class:`Hook` holding an optional sync and
an optional async implementation. ``call`` and ``acall`` both accept
either form, so the sync and async engine paths see the same outcome
for the same hook. Outcomes are interpreted by the shared helpers below,
never inline in the engines.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, final

from asgiref.sync import async_to_sync, sync_to_async

from fileserver.apps.files.exceptions import HookRejectedError

logger = logging.getLogger(__name__)

#: Sync callbacks receive ``(error)`` on failure, ``(None, result)`` else
Callback = Callable[..., Any]


@final
class Hook:
    """One extension point with sync and async implementations."""

    def __init__(
        self,
        name: str,
        func: Callable[..., Any] | None = None,
        async_func: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize hook.

        Args:
            name: Hook name used in log messages.
            func: Synchronous implementation.
            async_func: Asynchronous implementation.
        """
        self.name = name
        self.func = func
        self.async_func = async_func

    def __bool__(self) -> bool:
        """Whether any implementation is configured."""
        return self.func is not None or self.async_func is not None

    def call(self, *args: Any) -> Any:
        """Invoke the hook from synchronous code.

        Prefers the sync implementation and falls back to running the
        async one to completion.

        Args:
            args: Hook arguments.

        Returns:
            Hook outcome, None when no implementation is configured.
        """
        if self.func is not None:
            return self.func(*args)
        if self.async_func is not None:
            return async_to_sync(self.async_func)(*args)
        return None

    async def acall(self, *args: Any) -> Any:
        """Invoke the hook from asynchronous code.

        Prefers the async implementation and falls back to running the
        sync one in a worker thread.

        Args:
            args: Hook arguments.

        Returns:
            Hook outcome, None when no implementation is configured.
        """
        if self.async_func is not None:
            return await self.async_func(*args)
        if self.func is not None:
            return await sync_to_async(self.func)(*args)
        return None

    def notify(self, *args: Any) -> None:
        """Invoke a hook whose outcome does not matter.

        Failures are logged and never reach the caller.

        Args:
            args: Hook arguments.
        """
        if not self:
            return
        try:
            self.call(*args)
        except Exception:
            logger.exception('Hook %s failed', self.name)

    async def anotify(self, *args: Any) -> None:
        """Async version of :meth:`notify`."""
        if not self:
            return
        try:
            await self.acall(*args)
        except Exception:
            logger.exception('Hook %s failed', self.name)


def ensure_upload_allowed(outcome: Any) -> None:
    """Interpret the outcome of ``on_before_upload``.

    Only a literal ``True`` lets the upload proceed.

    Args:
        outcome: Value returned by the hook.

    Raises:
        HookRejectedError: For any other value; a non-empty string
            outcome becomes the error reason, anything else reports
            that the hook returned false.
    """
    if outcome is True:
        return
    reason = 'on_before_upload returned false'
    if isinstance(outcome, str) and outcome:
        reason = outcome
    logger.info('Upload rejected by on_before_upload: %s', reason)
    raise HookRejectedError(reason)


def is_download_intercepted(outcome: Any) -> bool:
    """Whether ``intercept_download`` took over the response."""
    return outcome is True


def is_download_allowed(outcome: Any) -> bool:
    """Whether ``download_callback`` lets the download proceed."""
    return bool(outcome)


def deliver(
    callback: Callback | None,
    operation: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Run a synchronous operation, reporting through a callback if given.

    Without a callback the operation raises or returns as usual. With
    one, failures are passed as ``callback(error)`` and success as
    ``callback(None, result)``.

    Args:
        callback: Optional callback in error-first style.
        operation: Operation to run.
        args: Positional arguments for the operation.
        kwargs: Keyword arguments for the operation.

    Returns:
        Operation result, or None when it failed and a callback got the
        error.
    """
    if callback is None:
        return operation(*args, **kwargs)
    try:
        outcome = operation(*args, **kwargs)
    except Exception as exc:
        callback(exc)
        return None
    callback(None, outcome)
    return outcome
