"""
Django-Q2 queue helpers for Classlane Platform.

Tasks are always queued by dotted path so service modules never import
task modules (and their signal receivers) at load time.
"""

from __future__ import annotations

from typing import Any

from django_q.tasks import async_task

# Seconds a worker may spend on one task before django-q2 kills it
DEFAULT_TASK_TIMEOUT = 60


def queue_by_name(func_path: str, *args: Any, timeout: int = DEFAULT_TASK_TIMEOUT, **kwargs: Any) -> str:
    """Enqueue a task by dotted path; returns the django-q2 task id."""
    # Task names group retries of the same job in the admin/monitor
    kwargs.setdefault("task_name", func_path.rsplit(".", 1)[-1])
    return async_task(func_path, *args, timeout=timeout, **kwargs)
