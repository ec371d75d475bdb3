"""
System Resource Manager for NoteSmith.

Sizes the worker pool from the machine it runs on and the user's resource
usage setting, and reports host resources for WorkerPool.get_system_status().

Formatting is regex work with small per-task memory, so the per-worker RAM
estimate is low and the CPU share is usually the binding limit:
- 100%: One worker per core
- 75%: Good balance (default)
- 25%: Minimal impact, tasks queue up sooner

Usage:
    from notesmith.system_resources import get_optimal_workers

    workers = get_optimal_workers(max_workers=4)
"""

import os
from typing import NamedTuple

import psutil

from notesmith.logging_config import debug_log
from notesmith.user_preferences import DEFAULT_PREFERENCES

DEFAULT_TASK_RAM_GB = 0.1
BYTES_PER_GB = 1024 ** 3
BYTES_PER_MB = 1024 ** 2


class ResourceInfo(NamedTuple):
    """Inputs to the worker-count calculation."""
    cpu_count: int
    available_ram_gb: float
    total_ram_gb: float
    resource_usage_pct: int


class ResourceSnapshot(NamedTuple):
    """Point-in-time host and process resources."""
    cpu_count: int
    cpu_percent: float
    available_ram_gb: float
    total_ram_gb: float
    memory_percent: float
    process_rss_mb: float


def get_system_resources(preferences=None) -> ResourceInfo:
    """
    Current CPU/RAM figures plus the user's resource usage percentage.

    Args:
        preferences: UserPreferencesManager; the default usage share if None.
    """
    usage_pct = DEFAULT_PREFERENCES["resource_usage_pct"]
    if preferences is not None:
        usage_pct = preferences.get("resource_usage_pct", usage_pct)

    mem = psutil.virtual_memory()
    return ResourceInfo(
        cpu_count=os.cpu_count() or 4,
        available_ram_gb=mem.available / BYTES_PER_GB,
        total_ram_gb=mem.total / BYTES_PER_GB,
        resource_usage_pct=usage_pct,
    )


def get_optimal_workers(task_ram_gb: float = DEFAULT_TASK_RAM_GB, max_workers: int = 8,
                        min_workers: int = 1, preferences=None) -> int:
    """
    Worker count for the current machine.

    The result is the minimum of:
    - CPU limit: cores * (resource_pct / 100)
    - RAM limit: 80% of available RAM / task_ram_gb
    - max_workers
    and never less than min_workers.
    """
    resources = get_system_resources(preferences)

    cpu_limited = int(resources.cpu_count * resources.resource_usage_pct / 100.0)
    usable_ram = resources.available_ram_gb * 0.8
    ram_limited = int(usable_ram / task_ram_gb) if task_ram_gb > 0 else max_workers

    final_workers = max(min_workers, min(cpu_limited, ram_limited, max_workers))

    debug_log(
        f"[Resources] Calculated workers: {final_workers} "
        f"(CPU: {resources.cpu_count} cores × {resources.resource_usage_pct}% = {cpu_limited}, "
        f"RAM: {resources.available_ram_gb:.1f}GB avail / {task_ram_gb}GB per worker = {ram_limited}, "
        f"cap: {max_workers})"
    )
    return final_workers


def get_resource_snapshot() -> ResourceSnapshot:
    """Host CPU/memory usage and this process's resident memory."""
    mem = psutil.virtual_memory()
    process = psutil.Process(os.getpid())
    return ResourceSnapshot(
        cpu_count=os.cpu_count() or 1,
        cpu_percent=psutil.cpu_percent(interval=None),
        available_ram_gb=mem.available / BYTES_PER_GB,
        total_ram_gb=mem.total / BYTES_PER_GB,
        memory_percent=mem.percent,
        process_rss_mb=process.memory_info().rss / BYTES_PER_MB,
    )


def get_resource_summary(preferences=None) -> str:
    """Human-readable summary, e.g. "8 cores, 12.3 GB RAM available (75% usage setting)"."""
    resources = get_system_resources(preferences)
    return (
        f"{resources.cpu_count} cores, "
        f"{resources.available_ram_gb:.1f} GB RAM available "
        f"({resources.resource_usage_pct}% usage setting)"
    )
