"""Progress notifications and the long-task progress reporter."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from envdock.errors import EngineError, Scope
from envdock.models.types import Action
from envdock.redact import redact_secrets

logger = logging.getLogger(__name__)


class ProgressLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ProgressEvent(Enum):
    DEPLOYMENT_IN_PROGRESS = "deployment_in_progress"
    PAUSE_IN_PROGRESS = "pause_in_progress"
    DELETE_IN_PROGRESS = "delete_in_progress"
    DEPLOYED = "deployed"
    PAUSED = "paused"
    DELETED = "deleted"
    DEPLOYMENT_ERROR = "deployment_error"
    PAUSE_ERROR = "pause_error"
    DELETE_ERROR = "delete_error"
    ERROR = "error"


_IN_PROGRESS = {
    Action.CREATE: ProgressEvent.DEPLOYMENT_IN_PROGRESS,
    Action.PAUSE: ProgressEvent.PAUSE_IN_PROGRESS,
    Action.DELETE: ProgressEvent.DELETE_IN_PROGRESS,
}
_SUCCESS = {
    Action.CREATE: ProgressEvent.DEPLOYED,
    Action.PAUSE: ProgressEvent.PAUSED,
    Action.DELETE: ProgressEvent.DELETED,
}
_FAILURE = {
    Action.CREATE: ProgressEvent.DEPLOYMENT_ERROR,
    Action.PAUSE: ProgressEvent.PAUSE_ERROR,
    Action.DELETE: ProgressEvent.DELETE_ERROR,
}


@dataclass
class ProgressInfo:
    scope: Scope
    level: ProgressLevel
    message: str | None
    execution_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.message:
            self.message = redact_secrets(self.message)


class ProgressListener:
    """Base listener. Every notification is routed through :meth:`notify`,
    which does nothing by default."""

    def notify(self, event: ProgressEvent, info: ProgressInfo):
        pass

    def deployment_in_progress(self, info):
        self.notify(ProgressEvent.DEPLOYMENT_IN_PROGRESS, info)

    def pause_in_progress(self, info):
        self.notify(ProgressEvent.PAUSE_IN_PROGRESS, info)

    def delete_in_progress(self, info):
        self.notify(ProgressEvent.DELETE_IN_PROGRESS, info)

    def deployed(self, info):
        self.notify(ProgressEvent.DEPLOYED, info)

    def paused(self, info):
        self.notify(ProgressEvent.PAUSED, info)

    def deleted(self, info):
        self.notify(ProgressEvent.DELETED, info)

    def deployment_error(self, info):
        self.notify(ProgressEvent.DEPLOYMENT_ERROR, info)

    def pause_error(self, info):
        self.notify(ProgressEvent.PAUSE_ERROR, info)

    def delete_error(self, info):
        self.notify(ProgressEvent.DELETE_ERROR, info)

    def error(self, info):
        self.notify(ProgressEvent.ERROR, info)


class LoggingProgressListener(ProgressListener):
    """Write every notification with a message to the module logger."""

    _LEVELS = {
        ProgressLevel.DEBUG: logging.DEBUG,
        ProgressLevel.INFO: logging.INFO,
        ProgressLevel.WARN: logging.WARNING,
        ProgressLevel.ERROR: logging.ERROR,
    }

    def notify(self, event, info):
        if info.message:
            logger.log(self._LEVELS[info.level], f"[{info.scope}] {info.message}")


class ListenersHelper:
    """Fan a notification out to every registered listener.

    A listener raising is logged and skipped so one broken sink cannot fail
    a deployment.
    """

    def __init__(self, listeners=None):
        self.listeners = list(listeners or [])

    def _dispatch(self, event: ProgressEvent, info: ProgressInfo):
        for listener in self.listeners:
            try:
                getattr(listener, event.value)(info)
            except Exception as e:
                logger.warning(f"Progress listener {type(listener).__name__} failed on {event.value}: {e}")

    def in_progress(self, action: Action, info: ProgressInfo):
        self._dispatch(_IN_PROGRESS.get(action, ProgressEvent.DEPLOYMENT_IN_PROGRESS), info)

    def success(self, action: Action, info: ProgressInfo):
        self._dispatch(_SUCCESS.get(action, ProgressEvent.DEPLOYED), info)

    def failure(self, action: Action, info: ProgressInfo):
        self._dispatch(_FAILURE.get(action, ProgressEvent.DEPLOYMENT_ERROR), info)

    def error(self, info: ProgressInfo):
        self._dispatch(ProgressEvent.ERROR, info)

    def info(self, scope: Scope, action: Action, message: str, execution_id: str = ""):
        self.in_progress(action, ProgressInfo(scope, ProgressLevel.INFO, message, execution_id))

    def warn(self, scope: Scope, action: Action, message: str, execution_id: str = ""):
        self.in_progress(action, ProgressInfo(scope, ProgressLevel.WARN, message, execution_id))

    def debug(self, scope: Scope, action: Action, message: str, execution_id: str = ""):
        self.in_progress(action, ProgressInfo(scope, ProgressLevel.DEBUG, message, execution_id))


def in_progress_message(label: str, action: Action) -> str:
    noun = {Action.CREATE: "deployment", Action.PAUSE: "pause", Action.DELETE: "deletion"}.get(action, action.value)
    return f"{label} {noun} is in progress..."


async def send_progress_on_long_task(
    listeners: ListenersHelper,
    scope: Scope,
    action: Action,
    long_task,
    execution_id: str = "",
    interval: float = 10.0,
    message: str | None = None,
    timeout: float | None = None,
):
    """Await ``long_task`` while notifying listeners every ``interval`` seconds.

    The notifier runs as a child task that is cancelled and awaited as soon as
    ``long_task`` finishes, whether it returned, raised or was cancelled, so no
    notification is emitted after completion. With ``timeout`` set, the long
    task itself is cancelled once the deadline passes and an EngineError is
    raised.

    Args:
        listeners: ListenersHelper receiving the in-progress notifications
        scope: scope of the notifications
        action: action in progress, selects the listener method
        long_task: awaitable performing the work
        execution_id: execution the notifications belong to
        interval: seconds between notifications
        message: notification text, defaults to "<scope> <action> is in progress..."
        timeout: optional deadline in seconds for ``long_task``

    Returns:
        Whatever ``long_task`` returns.
    """
    text = message or in_progress_message(str(scope), action)

    async def _notify_loop():
        while True:
            await asyncio.sleep(interval)
            listeners.in_progress(action, ProgressInfo(scope, ProgressLevel.INFO, text, execution_id))

    notifier = asyncio.create_task(_notify_loop())
    try:
        if timeout is None:
            return await long_task
        try:
            return await asyncio.wait_for(long_task, timeout=timeout)
        except TimeoutError:
            raise EngineError.new_task_timeout(scope, execution_id, timeout) from None
    finally:
        notifier.cancel()
        await asyncio.gather(notifier, return_exceptions=True)
