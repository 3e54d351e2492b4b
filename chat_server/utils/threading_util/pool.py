"""Reusable thread-pool helpers for background tasks.

This module exposes a singleton ThreadPoolExecutor and convenience helpers to submit
background work (activity logging) without repeating executor setup logic.

Configuration:
- config.WORKER_THREADS controls max_workers when the executor is first created.

API:
- get_executor(max_workers=None) -> ThreadPoolExecutor
- submit_task(fn, *args, **kwargs) -> concurrent.futures.Future
- shutdown_executor(wait=False)
"""
from concurrent.futures import ThreadPoolExecutor
from atexit import register as _atexit_register
import threading
import logging

from config import config

_executor = None
_executor_lock = threading.Lock()


def _create_executor(max_workers=None):
    if max_workers is None:
        max_workers = config.WORKER_THREADS
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='chat-bg')


def get_executor(max_workers=None):
    """Return a singleton ThreadPoolExecutor (create lazily)."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = _create_executor(max_workers=max_workers)
                _atexit_register(lambda: shutdown_executor(wait=False))
    return _executor


def submit_task(fn, *args, **kwargs):
    """Submit a callable to the shared executor and return a Future.

    Exceptions are available on the returned Future; callers can ignore the
    Future for fire-and-forget semantics.
    """
    return get_executor().submit(fn, *args, **kwargs)


def shutdown_executor(wait=False):
    """Shutdown the shared executor if created."""
    global _executor
    try:
        exec_local = _executor
        if exec_local is not None:
            exec_local.shutdown(wait=wait)
    except Exception:
        logging.exception('Error while shutting down executor')
    finally:
        _executor = None
