"""job 存储抽象：默认纯内存；换持久化后端只需实现同样的四个方法"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from app.orchestration.background_sync.jobs import SyncJob


class JobStore(Protocol):
    def save(self, job: SyncJob) -> None: ...

    def load(self, job_id: str) -> Optional[SyncJob]: ...

    def list(self) -> List[SyncJob]: ...

    def delete(self, job_id: str) -> bool: ...


class InMemoryJobStore:
    """dict 保持插入顺序，list() 即创建顺序"""

    def __init__(self) -> None:
        self._jobs: Dict[str, SyncJob] = {}

    def save(self, job: SyncJob) -> None:
        self._jobs[job.id] = job

    def load(self, job_id: str) -> Optional[SyncJob]:
        return self._jobs.get(job_id)

    def list(self) -> List[SyncJob]:
        return list(self._jobs.values())

    def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None
