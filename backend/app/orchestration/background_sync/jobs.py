"""
后台同步 job 的数据结构 + 协作式控制令牌。
  - SyncJob 只在内存里，进程重启即丢；
  - JobControl 由队列持有、传给同步例程，例程在每页/每条之间调用 checkpoint()。
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.utils.clock import now_utc


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.PAUSED})
CANCELLED_ERROR = "cancelled"


@dataclass(frozen=True)
class SyncProgress:
    stage: str
    current: int
    total: int
    message: str = ""


@dataclass
class SyncResult:
    """同步例程的返回值：message 写到 job.message，details 原样挂到 job.details"""
    success: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


def new_job_id(shop_id: str) -> str:
    # shop 前缀方便肉眼排查，uuid 保证永不重复
    return f"{shop_id}:{uuid.uuid4().hex}"


@dataclass
class SyncJob:
    id: str
    shop_id: str
    status: JobStatus = JobStatus.QUEUED
    enqueued_at: datetime = field(default_factory=now_utc)
    shop_name: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    progress: List[SyncProgress] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def latest_progress(self) -> Optional[SyncProgress]:
        return self.progress[-1] if self.progress else None


class JobCancelled(Exception):
    """同步例程在 checkpoint 处发现 job 已被取消"""


class JobControl:
    """
    协作式的暂停/取消令牌。
    _running 事件 set 表示可以继续；pause 时 clear，resume/cancel 时 set 唤醒等待方。
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._running = asyncio.Event()
        self._running.set()

    def is_cancelled(self) -> bool:
        return self._cancelled

    def is_paused(self) -> bool:
        return not self._running.is_set()

    def pause(self) -> None:
        if not self._cancelled:
            self._running.clear()

    def resume(self) -> None:
        self._running.set()

    def cancel(self) -> None:
        self._cancelled = True
        self._running.set()  # 放开暂停，让例程能走到 checkpoint 看到取消

    async def await_resume(self) -> None:
        await self._running.wait()

    async def checkpoint(self) -> None:
        """暂停就等着；取消则抛 JobCancelled，例程不再继续下一个单元"""
        if self.is_paused():
            await self.await_resume()
        if self._cancelled:
            raise JobCancelled(CANCELLED_ERROR)
