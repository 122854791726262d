"""Tests for envdock.progress: listeners fan-out and the long-task reporter."""

import asyncio
import logging
import math

import pytest

from envdock.errors import EngineError, ErrorTag, Scope
from envdock.models import Action
from envdock.progress import (
    ListenersHelper,
    ProgressEvent,
    ProgressInfo,
    ProgressLevel,
    ProgressListener,
    in_progress_message,
    send_progress_on_long_task,
)
from envdock.redact import register_secret

SCOPE = Scope.environment("env1")


class Broken(ProgressListener):
    def notify(self, event, info):
        raise RuntimeError("sink down")


# ── ListenersHelper ─────────────────────────────────────────────────


def test_listeners_route_by_action(listener):
    helper = ListenersHelper([listener])
    info = ProgressInfo(SCOPE, ProgressLevel.INFO, "msg")

    helper.in_progress(Action.PAUSE, info)
    helper.success(Action.DELETE, info)
    helper.failure(Action.CREATE, info)
    helper.error(info)

    assert [e for e, _ in listener.events] == [
        ProgressEvent.PAUSE_IN_PROGRESS,
        ProgressEvent.DELETED,
        ProgressEvent.DEPLOYMENT_ERROR,
        ProgressEvent.ERROR,
    ]


def test_broken_listener_does_not_stop_others(listener, caplog):
    helper = ListenersHelper([Broken(), listener])
    with caplog.at_level(logging.WARNING):
        helper.info(SCOPE, Action.CREATE, "hello")
    assert listener.messages() == ["hello"]
    assert "sink down" in caplog.text


def test_progress_info_redacts_registered_secrets():
    register_secret("p4ssw0rd-very-secret")
    info = ProgressInfo(SCOPE, ProgressLevel.INFO, "password is p4ssw0rd-very-secret")
    assert info.message == "password is ***"


def test_in_progress_message():
    assert in_progress_message("Application 'web'", Action.CREATE) == "Application 'web' deployment is in progress..."
    assert in_progress_message("Router 'r'", Action.DELETE) == "Router 'r' deletion is in progress..."


# ── send_progress_on_long_task ──────────────────────────────────────


async def test_reporter_returns_task_result(listener):
    async def work():
        return 42

    result = await send_progress_on_long_task(ListenersHelper([listener]), SCOPE, Action.CREATE, work(), interval=10)
    assert result == 42
    assert listener.events == []


async def test_reporter_notifies_while_task_runs(listener):
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "ok"

    task = asyncio.create_task(
        send_progress_on_long_task(
            ListenersHelper([listener]), SCOPE, Action.CREATE, work(), interval=0.01, message="still working"
        )
    )
    while len(listener.events) < 3:
        await asyncio.sleep(0.005)
    release.set()
    assert await task == "ok"

    seen = len(listener.events)
    await asyncio.sleep(0.05)
    assert len(listener.events) == seen
    assert all(e is ProgressEvent.DEPLOYMENT_IN_PROGRESS for e, _ in listener.events)
    assert set(listener.messages()) == {"still working"}


async def test_reporter_notification_count_is_bounded_by_duration(listener):
    interval, duration = 0.05, 0.275
    loop = asyncio.get_running_loop()
    start = loop.time()

    await send_progress_on_long_task(
        ListenersHelper([listener]), SCOPE, Action.CREATE, asyncio.sleep(duration), interval=interval
    )
    elapsed = loop.time() - start

    count = len(listener.events)
    assert math.floor(duration / interval) <= count <= math.floor(elapsed / interval) + 1


async def test_reporter_propagates_task_exception(listener):
    async def work():
        raise ValueError("deploy failed")

    with pytest.raises(ValueError, match="deploy failed"):
        await send_progress_on_long_task(ListenersHelper([listener]), SCOPE, Action.DELETE, work(), interval=0.01)

    await asyncio.sleep(0.03)
    assert listener.events == []


async def test_reporter_timeout_raises_engine_error(listener):
    cancelled = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(EngineError) as exc_info:
        await send_progress_on_long_task(
            ListenersHelper([listener]), SCOPE, Action.CREATE, work(), interval=1, timeout=0.02
        )
    assert exc_info.value.tag is ErrorTag.TASK_TIMEOUT
    assert cancelled.is_set()
