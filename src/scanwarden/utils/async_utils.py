"""Async utilities for running scans from synchronous CLI code."""

import asyncio
import signal
import sys
import threading
from collections.abc import Coroutine
from typing import Any, cast


def _can_install_signal_handlers() -> bool:
    return sys.platform != "win32" and threading.current_thread() is threading.main_thread()


async def _cancel_on_sigterm[T](coro: Coroutine[Any, Any, T], stopped: threading.Event) -> T:
    """Await ``coro`` with SIGTERM mapped to cancellation of the current task.

    Cancellation unwinds through the executor, which kills and reaps the
    tool process before the loop closes.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed = False
    if task is not None and _can_install_signal_handlers():

        def _on_sigterm() -> None:
            stopped.set()
            task.cancel()

        loop.add_signal_handler(signal.SIGTERM, _on_sigterm)
        installed = True
    try:
        return await coro
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGTERM)


def _run_with_runner[T](coro: Coroutine[Any, Any, T]) -> T:
    # asyncio.Runner handles SIGINT the same way (cancel, then KeyboardInterrupt).
    stopped = threading.Event()
    with asyncio.Runner() as runner:
        try:
            return runner.run(_cancel_on_sigterm(coro, stopped))
        except asyncio.CancelledError:
            if stopped.is_set():
                raise KeyboardInterrupt from None
            raise


def safe_async_run[T](coro: Coroutine[Any, Any, T]) -> T:
    """
    Run an async coroutine to completion from synchronous code.

    If an event loop is already running in this thread (e.g. pytest-asyncio),
    the coroutine runs on a worker thread with its own loop and any exception
    is re-raised here.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _run_with_runner(coro)

    outcome: dict[str, Any] = {}

    def _worker() -> None:
        try:
            outcome["result"] = _run_with_runner(coro)
        except BaseException as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=_worker, name="scanwarden-scan", daemon=True)
    worker.start()
    worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return cast(T, outcome["result"])
