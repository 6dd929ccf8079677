"""
进程内后台同步队列（不落库，重启即丢）

状态机：
    queued  --worker 取到-->  running
    running --pause-->       paused   --resume--> running
    queued/running/paused --cancel--> failed(error="cancelled")
    running --例程正常返回--> completed
    running --例程抛异常-->   failed(error=异常信息)
completed/failed 为终态，不再迁移。

并发模型：单事件循环 + 协作式调度。job 列表的所有修改都发生在两个 await 之间的同步段里，所以不加锁。
同一个 shop 的 job 永远不会并发执行（lanes>1 时也一样）。
"""
from __future__ import annotations

import asyncio
import functools
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set

from app.core.config import settings
from app.orchestration.background_sync.jobs import (
    ACTIVE_STATUSES,
    CANCELLED_ERROR,
    JobCancelled,
    JobControl,
    JobStatus,
    SyncJob,
    SyncProgress,
    SyncResult,
    new_job_id,
)
from app.orchestration.background_sync.store import InMemoryJobStore, JobStore
from app.utils.clock import hms, now_utc

logger = logging.getLogger(__name__)


ProgressReporter = Callable[[SyncProgress], None]
SyncRoutine = Callable[[SyncJob, JobControl, ProgressReporter], Awaitable[Optional[SyncResult]]]


class SyncQueueError(Exception):
    """Base for queue control errors."""


class JobNotFoundError(SyncQueueError):
    pass


class JobStateError(SyncQueueError):
    """The requested transition is not allowed from the job's current status."""


class BackgroundSyncQueue:

    def __init__(
        self,
        routine: SyncRoutine,
        *,
        store: Optional[JobStore] = None,
        lanes: Optional[int] = None,
        log_max_lines: Optional[int] = None,
    ) -> None:
        self._routine = routine
        self._store: JobStore = store if store is not None else InMemoryJobStore()
        self._lanes = max(1, lanes or settings.SYNC_QUEUE_LANES)
        self._log_max_lines = settings.SYNC_JOB_LOG_MAX_LINES if log_max_lines is None else log_max_lines

        self._pending: Deque[str] = deque()          # queued 的 job id，FIFO
        self._controls: Dict[str, JobControl] = {}   # 未结束 job 的控制令牌
        self._active_shops: Set[str] = set()         # 正在执行的 shop
        self._workers: List[asyncio.Task] = []
        self._wakeup: Optional[asyncio.Event] = None
        self._stopped = False


    # ---------- 生命周期 ----------
    def start(self) -> None:
        """在当前事件循环上拉起 worker；已在跑时重复调用无副作用。"""
        loop = asyncio.get_running_loop()
        if self.is_running:
            return
        self._stopped = False
        self._wakeup = asyncio.Event()
        self._workers = [
            loop.create_task(self._worker(lane), name=f"sync-worker-{lane}")
            for lane in range(self._lanes)
        ]
        logger.info("sync.queue.started lanes=%s pending=%s", self._lanes, len(self._pending))
        self._wake()

    async def stop(self) -> None:
        """取消所有 worker 并等待退出；正在跑的 job 记为 failed(cancelled)。"""
        self._stopped = True
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info("sync.queue.stopped")

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)


    # ---------- 对外操作 ----------
    def enqueue(self, shop_id: str) -> SyncJob:
        """
        新建 queued job 并返回；不阻塞，执行是异步的。
        同一 shop 已有 queued/running/paused 的 job 时直接返回那个 job，不重复排队。
        """
        existing = self._active_job_for_shop(shop_id)
        if existing is not None:
            logger.info("sync.job.duplicate shop=%s existing=%s status=%s", shop_id, existing.id, existing.status.value)
            return existing

        job = SyncJob(id=new_job_id(shop_id), shop_id=shop_id)
        self._log(job, f"Job created for shop {shop_id}")
        self._store.save(job)
        self._controls[job.id] = JobControl()
        self._pending.append(job.id)
        logger.info("sync.job.enqueued job=%s shop=%s", job.id, shop_id)

        self._kick()
        return job

    def get(self, job_id: str) -> Optional[SyncJob]:
        return self._store.load(job_id)

    def list(self) -> List[SyncJob]:
        """按创建顺序返回；展示时由调用方自行排序"""
        return self._store.list()

    def pause(self, job_id: str) -> SyncJob:
        job = self._require(job_id)
        if job.status is not JobStatus.RUNNING:
            raise JobStateError(f"cannot pause a {job.status.value} job")

        self._control(job).pause()
        job.status = JobStatus.PAUSED
        self._log(job, "Job paused")
        self._store.save(job)
        logger.info("sync.job.paused job=%s", job.id)
        return job

    def resume(self, job_id: str) -> SyncJob:
        job = self._require(job_id)
        if job.status is not JobStatus.PAUSED:
            raise JobStateError(f"cannot resume a {job.status.value} job")

        job.status = JobStatus.RUNNING
        self._control(job).resume()
        self._log(job, "Job resumed")
        self._store.save(job)
        logger.info("sync.job.resumed job=%s", job.id)
        return job

    def cancel(self, job_id: str) -> SyncJob:
        """
        queued/running/paused → failed(error="cancelled")。
        已是终态时原样返回（幂等）。正在跑的例程会在下一个 checkpoint 退出。
        """
        job = self._require(job_id)
        if job.is_terminal:
            return job

        was_queued = job.status is JobStatus.QUEUED
        control = self._controls.get(job.id)
        if control is not None:
            control.cancel()
        if was_queued:
            self._drop_pending(job.id)
            self._controls.pop(job.id, None)

        job.status = JobStatus.FAILED
        job.error = CANCELLED_ERROR
        job.finished_at = now_utc()
        job.message = "Cancelled before start" if was_queued else "Cancelled"
        self._log(job, "Job cancelled before start" if was_queued else "Job cancelled, stopping at next checkpoint")
        self._store.save(job)
        logger.info("sync.job.cancelled job=%s was_queued=%s", job.id, was_queued)
        return job

    def remove(self, job_id: str) -> bool:
        """只允许移除 paused/completed/failed；queued/running 返回 False。"""
        job = self._store.load(job_id)
        if job is None:
            return False
        if job.status in (JobStatus.QUEUED, JobStatus.RUNNING):
            return False

        control = self._controls.pop(job.id, None)
        if control is not None:
            # paused 的例程卡在 checkpoint，取消后它会自行退出
            control.cancel()
        self._drop_pending(job.id)
        self._store.delete(job.id)
        logger.info("sync.job.removed job=%s status=%s", job.id, job.status.value)
        return True


    # ---------- worker ----------
    async def _worker(self, lane: int) -> None:
        assert self._wakeup is not None
        while True:
            job = self._next_job()
            if job is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            await self._execute(job, lane)
            # 可能有被同 shop 挡住的 job，唤醒其它 lane 再看一轮
            self._wake()

    def _next_job(self) -> Optional[SyncJob]:
        """FIFO 取第一个 queued 且 shop 不在执行中的 job"""
        for job_id in list(self._pending):
            job = self._store.load(job_id)
            if job is None or job.status is not JobStatus.QUEUED:
                self._drop_pending(job_id)
                continue
            if job.shop_id in self._active_shops:
                continue
            self._drop_pending(job_id)
            return job
        return None

    async def _execute(self, job: SyncJob, lane: int) -> None:
        control = self._control(job)
        self._active_shops.add(job.shop_id)
        job.status = JobStatus.RUNNING
        job.started_at = now_utc()
        self._log(job, "Starting sync")
        self._store.save(job)
        logger.info("sync.job.start job=%s shop=%s lane=%s", job.id, job.shop_id, lane)

        try:
            result = await self._routine(job, control, functools.partial(self._report, job))
            if job.status is JobStatus.PAUSED:
                # 最后一个单元在暂停后才跑完：completed 只能从 running 进入，等 resume/cancel
                self._log(job, "Work finished while paused; waiting for resume")
                await control.checkpoint()

        except JobCancelled:
            self._fail(job, CANCELLED_ERROR)
            self._log(job, "Stopped")
            logger.info("sync.job.stopped job=%s", job.id)

        except asyncio.CancelledError:
            # worker 被 stop() 取消：job 记失败后继续向上抛
            self._fail(job, CANCELLED_ERROR)
            raise

        except Exception as e:
            logger.exception("sync.job.failed job=%s shop=%s", job.id, job.shop_id)
            self._fail(job, str(e) or type(e).__name__)

        else:
            if job.is_terminal:
                # 最后一个单元跑完前已被取消，保持 failed(cancelled)
                self._log(job, "Work finished after cancellation; result discarded")
            else:
                job.status = JobStatus.COMPLETED
                job.finished_at = now_utc()
                job.message = result.message if result else "Sync completed"
                job.details = result.details if result else None
                self._log(job, f"Finished: {job.message}")
                logger.info("sync.job.completed job=%s message=%s", job.id, job.message)

        finally:
            self._active_shops.discard(job.shop_id)
            self._controls.pop(job.id, None)
            # 运行期间被 remove 的 job 不再写回
            if self._store.load(job.id) is not None:
                self._store.save(job)

    def _fail(self, job: SyncJob, error: str) -> None:
        if job.is_terminal:
            return
        job.status = JobStatus.FAILED
        job.finished_at = now_utc()
        job.error = error
        self._log(job, f"Failed: {error}")

    def _report(self, job: SyncJob, progress: SyncProgress) -> None:
        # 取消后、例程到达 checkpoint 前的进度不再记录
        if job.is_terminal:
            return
        job.progress.append(progress)
        self._log(job, f"{progress.stage} {progress.current}/{progress.total} - {progress.message}")


    # ---------- helpers ----------
    def _kick(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # 同步上下文（脚本）里没有事件循环：等 start() 再跑
            return
        if not self.is_running and not self._stopped:
            self.start()
        self._wake()

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _require(self, job_id: str) -> SyncJob:
        job = self._store.load(job_id)
        if job is None:
            raise JobNotFoundError(f"job not found: {job_id}")
        return job

    def _control(self, job: SyncJob) -> JobControl:
        return self._controls.setdefault(job.id, JobControl())

    def _active_job_for_shop(self, shop_id: str) -> Optional[SyncJob]:
        for job in self._store.list():
            if job.shop_id == shop_id and job.status in ACTIVE_STATUSES:
                return job
        return None

    def _drop_pending(self, job_id: str) -> None:
        try:
            self._pending.remove(job_id)
        except ValueError:
            pass

    def _log(self, job: SyncJob, text: str) -> None:
        job.logs.append(f"[{hms()}] {text}")
        cap = self._log_max_lines
        if cap and len(job.logs) > cap:
            del job.logs[: len(job.logs) - cap]
