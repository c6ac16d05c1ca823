from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from deskgate.core import (
    Executor,
    FilesystemAdapter,
    InMemoryHistoryStore,
    PolicyEngine,
    Settings,
    load_settings,
)


@dataclass
class Runtime:
    settings: Settings
    policy: PolicyEngine
    store: InMemoryHistoryStore
    executor: Executor
    home_dir: Path


def create_runtime(
    settings: Settings | None = None,
    home_dir: Path | None = None,
    adapter: FilesystemAdapter | None = None,
) -> Runtime:
    settings = settings or load_settings()
    policy = PolicyEngine.from_settings(settings)
    store = InMemoryHistoryStore()
    executor = Executor.from_settings(settings, policy=policy, store=store)
    if adapter is not None:
        executor.adapter = adapter
    return Runtime(
        settings=settings,
        policy=policy,
        store=store,
        executor=executor,
        home_dir=home_dir or Path.home(),
    )
