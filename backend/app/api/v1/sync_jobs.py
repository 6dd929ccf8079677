# 后台同步任务：入队 / 查询 / 暂停 / 恢复 / 取消 / 删除
#
# 所有路由都是 async def：队列只能在事件循环线程里操作（不能进 threadpool）；查库用 to_thread。
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.v1.deps import get_sync_queue
from app.core.config import settings
from app.db.session import get_db
from app.orchestration.background_sync import (
    BackgroundSyncQueue,
    JobNotFoundError,
    JobStateError,
    SyncJob,
)
from app.repository import shop_repo

router = APIRouter(prefix="/sync", tags=["sync"])


class EnqueueRequest(BaseModel):
    shop_id: Optional[str] = None


class EnqueueOut(BaseModel):
    accepted: bool
    jobs: List[str]


class ProgressOut(BaseModel):
    stage: str
    current: int
    total: int
    message: str


class JobOut(BaseModel):
    id: str
    shop_id: str
    shop_name: Optional[str] = None
    status: str
    enqueued_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    progress: List[ProgressOut]
    logs: List[str]


class JobListOut(BaseModel):
    jobs: List[JobOut]


@router.post("/background", response_model=EnqueueOut, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_sync(
    body: Optional[EnqueueRequest] = None,
    db: Session = Depends(get_db),
    queue: BackgroundSyncQueue = Depends(get_sync_queue),
) -> EnqueueOut:
    """
    带 shop_id：只入队该店铺（不存在 → 404）；
    不带：所有已登记店铺各入队一次。同一店铺已有未结束的 job 时返回那个 job 的 id。
    """
    shop_id = body.shop_id if body else None
    if shop_id:
        shop = await asyncio.to_thread(shop_repo.get, db, shop_id)
        if shop is None:
            raise HTTPException(status_code=404, detail="Shop not found")
        shops = [shop]
    else:
        shops = await asyncio.to_thread(shop_repo.list_all, db)

    job_ids: List[str] = []
    for shop in shops:
        job = queue.enqueue(str(shop.id))
        if job.shop_name is None:
            job.shop_name = shop.name
        job_ids.append(job.id)

    return EnqueueOut(accepted=True, jobs=job_ids)


@router.get("/background", response_model=None)
async def get_sync_status(
    job_id: Optional[str] = Query(default=None),
    queue: BackgroundSyncQueue = Depends(get_sync_queue),
) -> JobOut | JobListOut:
    if job_id:
        job = queue.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return _to_out(job)
    return JobListOut(jobs=[_to_out(j) for j in queue.list()])


@router.post("/jobs/{job_id}/pause", response_model=JobOut)
async def pause_job(job_id: str, queue: BackgroundSyncQueue = Depends(get_sync_queue)) -> JobOut:
    return _control(queue.pause, job_id)


@router.post("/jobs/{job_id}/resume", response_model=JobOut)
async def resume_job(job_id: str, queue: BackgroundSyncQueue = Depends(get_sync_queue)) -> JobOut:
    return _control(queue.resume, job_id)


@router.post("/jobs/{job_id}/cancel", response_model=JobOut)
async def cancel_job(job_id: str, queue: BackgroundSyncQueue = Depends(get_sync_queue)) -> JobOut:
    return _control(queue.cancel, job_id)


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(job_id: str, queue: BackgroundSyncQueue = Depends(get_sync_queue)) -> Response:
    job = queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if not queue.remove(job_id):
        raise HTTPException(status_code=409, detail=f"cannot remove a {job.status.value} job")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _control(op, job_id: str) -> JobOut:
    try:
        job = op(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc
    except JobStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_out(job)


def _to_out(job: SyncJob) -> JobOut:
    # 日志只回最近 N 行
    tail = settings.SYNC_JOB_LOG_TAIL
    return JobOut(
        id=job.id,
        shop_id=job.shop_id,
        shop_name=job.shop_name,
        status=job.status.value,
        enqueued_at=job.enqueued_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        message=job.message,
        error=job.error,
        details=job.details,
        progress=[
            ProgressOut(stage=p.stage, current=p.current, total=p.total, message=p.message)
            for p in job.progress
        ],
        logs=list(job.logs[-tail:]),
    )
