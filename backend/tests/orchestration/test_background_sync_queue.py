import asyncio
import re

import pytest

from app.orchestration.background_sync import (
    BackgroundSyncQueue,
    JobNotFoundError,
    JobStateError,
    JobStatus,
    SyncProgress,
    SyncResult,
)


LOG_LINE = re.compile(r"^\[\d{2}:\d{2}:\d{2}\] ")


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class _Stepper:
    """
    可控的同步例程：每一步先 checkpoint、再上报进度，然后停在 gate 上等测试放行。
    calls 记录被执行的 shop，reached 记录走到的步数。
    """

    def __init__(self, steps: int = 3) -> None:
        self.steps = steps
        self.gate = asyncio.Event()
        self.reached = {}
        self.calls = []

    def release(self) -> None:
        self.gate.set()

    async def __call__(self, job, control, report):
        self.calls.append(job.shop_id)
        self.reached[job.id] = []
        for i in range(1, self.steps + 1):
            await control.checkpoint()
            report(SyncProgress("products", i, self.steps, f"item {i}"))
            self.reached[job.id].append(i)
            await self.gate.wait()
            self.gate.clear()
        return SyncResult(success=True, message=f"synced {self.steps} items", details={"items": self.steps})


async def _instant(job, control, report):
    report(SyncProgress("products", 1, 1, "only item"))
    return SyncResult(success=True, message="ok", details={"items": 1})



# ---------- 正常流程 ----------
def test_job_runs_to_completion_with_progress_and_logs():
    async def scenario():
        queue = BackgroundSyncQueue(_instant)
        job = queue.enqueue("shop-1")
        assert job.status is JobStatus.QUEUED
        assert job.id.startswith("shop-1:")

        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    assert job.started_at is not None and job.finished_at is not None
    assert job.finished_at >= job.started_at >= job.enqueued_at
    assert job.message == "ok"
    assert job.details == {"items": 1}
    assert job.error is None
    assert job.progress == [SyncProgress("products", 1, 1, "only item")]
    assert all(LOG_LINE.match(line) for line in job.logs)
    assert any(line.endswith("products 1/1 - only item") for line in job.logs)
    assert job.logs[-1].endswith("Finished: ok")


def test_routine_returning_none_still_completes():
    async def routine(job, control, report):
        return None

    async def scenario():
        queue = BackgroundSyncQueue(routine)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())
    assert job.status is JobStatus.COMPLETED
    assert job.message == "Sync completed"


def test_failing_routine_marks_job_failed_and_worker_survives():
    async def routine(job, control, report):
        if job.shop_id == "bad":
            raise RuntimeError("Shop not found: bad")
        return SyncResult(success=True, message="fine")

    async def scenario():
        queue = BackgroundSyncQueue(routine)
        bad = queue.enqueue("bad")
        good = queue.enqueue("good")
        await _wait_for(lambda: bad.is_terminal and good.is_terminal)
        await queue.stop()
        return bad, good

    bad, good = asyncio.run(scenario())

    assert bad.status is JobStatus.FAILED
    assert bad.error == "Shop not found: bad"
    assert bad.finished_at is not None
    assert bad.logs[-1].endswith("Failed: Shop not found: bad")
    assert good.status is JobStatus.COMPLETED


def test_jobs_run_in_fifo_order_on_a_single_lane():
    order = []

    async def routine(job, control, report):
        order.append(job.shop_id)
        await asyncio.sleep(0)
        return None

    async def scenario():
        queue = BackgroundSyncQueue(routine, lanes=1)
        jobs = [queue.enqueue(s) for s in ("a", "b", "c")]
        await _wait_for(lambda: all(j.is_terminal for j in jobs))
        await queue.stop()

    asyncio.run(scenario())
    assert order == ["a", "b", "c"]


def test_enqueue_returns_existing_active_job_for_same_shop():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper)
        first = queue.enqueue("shop-1")
        assert queue.enqueue("shop-1") is first            # queued

        await _wait_for(lambda: first.status is JobStatus.RUNNING)
        assert queue.enqueue("shop-1") is first            # running

        stepper.release()
        await _wait_for(lambda: first.is_terminal)
        second = queue.enqueue("shop-1")                   # 已结束 → 新 job
        assert second is not first
        assert second.id != first.id

        stepper.release()
        await _wait_for(lambda: second.is_terminal)
        await queue.stop()
        return queue, first, second

    queue, first, second = asyncio.run(scenario())
    assert [j.id for j in queue.list()] == [first.id, second.id]


def test_second_lane_runs_other_shops_concurrently():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper, lanes=2)
        a = queue.enqueue("a")
        b = queue.enqueue("b")
        await _wait_for(lambda: a.status is JobStatus.RUNNING and b.status is JobStatus.RUNNING)
        stepper.release()
        await _wait_for(lambda: a.is_terminal or b.is_terminal)
        stepper.release()
        await _wait_for(lambda: a.is_terminal and b.is_terminal)
        await queue.stop()

    asyncio.run(scenario())


def test_single_lane_keeps_second_job_queued():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper, lanes=1)
        a = queue.enqueue("a")
        b = queue.enqueue("b")
        await _wait_for(lambda: a.status is JobStatus.RUNNING)
        await asyncio.sleep(0.01)
        assert b.status is JobStatus.QUEUED

        stepper.release()
        await _wait_for(lambda: b.status is JobStatus.RUNNING)
        stepper.release()
        await _wait_for(lambda: b.is_terminal)
        await queue.stop()

    asyncio.run(scenario())



# ---------- 暂停 / 恢复 ----------
def test_pause_blocks_at_next_checkpoint_until_resume():
    async def scenario():
        stepper = _Stepper(steps=3)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])

        assert queue.pause(job.id) is job
        assert job.status is JobStatus.PAUSED

        stepper.release()                     # 当前单元做完，停在下一个 checkpoint
        await asyncio.sleep(0.02)
        assert stepper.reached[job.id] == [1]
        assert job.status is JobStatus.PAUSED

        queue.resume(job.id)
        assert job.status is JobStatus.RUNNING
        await _wait_for(lambda: stepper.reached[job.id] == [1, 2])
        stepper.release()
        await _wait_for(lambda: stepper.reached[job.id] == [1, 2, 3])
        stepper.release()
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    currents = [p.current for p in job.progress]
    assert currents == sorted(currents) == [1, 2, 3]
    assert any(line.endswith("Job paused") for line in job.logs)
    assert any(line.endswith("Job resumed") for line in job.logs)


def test_invalid_transitions_raise_state_errors():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper, lanes=1)
        running = queue.enqueue("a")
        queued = queue.enqueue("b")
        await _wait_for(lambda: running.status is JobStatus.RUNNING)

        with pytest.raises(JobStateError):
            queue.pause(queued.id)          # queued 不能暂停
        with pytest.raises(JobStateError):
            queue.resume(running.id)        # running 不能恢复

        stepper.release()
        await _wait_for(lambda: running.is_terminal)
        with pytest.raises(JobStateError):
            queue.pause(running.id)         # 终态不能暂停

        stepper.release()
        await _wait_for(lambda: queued.is_terminal)
        await queue.stop()

    asyncio.run(scenario())


def test_unknown_job_ids_raise_not_found():
    queue = BackgroundSyncQueue(_instant)
    for op in (queue.pause, queue.resume, queue.cancel):
        with pytest.raises(JobNotFoundError):
            op("nope")
    assert queue.get("nope") is None
    assert queue.remove("nope") is False


def test_job_paused_during_last_unit_stays_paused_until_resume():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])

        queue.pause(job.id)
        stepper.release()                     # 例程返回，后面没有 checkpoint
        await asyncio.sleep(0.02)
        assert job.status is JobStatus.PAUSED
        assert job.finished_at is None

        queue.resume(job.id)
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())
    assert job.status is JobStatus.COMPLETED
    assert job.message == "synced 1 items"
    assert job.finished_at is not None


def test_job_paused_during_last_unit_can_be_cancelled():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])

        queue.pause(job.id)
        stepper.release()
        await asyncio.sleep(0.02)
        queue.cancel(job.id)
        await _wait_for(lambda: any(line.endswith("Stopped") for line in job.logs))
        await queue.stop()
        return job

    job = asyncio.run(scenario())
    assert job.status is JobStatus.FAILED
    assert job.error == "cancelled"
    assert job.details is None
    assert not any("Finished:" in line for line in job.logs)



# ---------- 取消 ----------
def test_cancel_running_job_fails_it_and_stops_at_checkpoint():
    async def scenario():
        stepper = _Stepper(steps=3)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])

        queue.cancel(job.id)
        assert job.status is JobStatus.FAILED
        assert job.error == "cancelled"
        finished_at = job.finished_at
        assert finished_at is not None

        stepper.release()
        await _wait_for(lambda: any(line.endswith("Stopped") for line in job.logs))
        await queue.stop()
        return job, stepper, finished_at

    job, stepper, finished_at = asyncio.run(scenario())

    assert stepper.reached[job.id] == [1]       # 没有进入第二个单元
    assert job.status is JobStatus.FAILED
    assert job.finished_at == finished_at
    assert len(job.progress) == 1


def test_cancel_paused_job_releases_the_routine():
    async def scenario():
        stepper = _Stepper(steps=3)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])
        queue.pause(job.id)
        stepper.release()
        await asyncio.sleep(0.01)

        queue.cancel(job.id)
        assert job.status is JobStatus.FAILED
        await _wait_for(lambda: any(line.endswith("Stopped") for line in job.logs))

        # 例程退出后同一店铺可以重新入队
        again = queue.enqueue("shop-1")
        assert again is not job
        await _wait_for(lambda: again.status is JobStatus.RUNNING)
        queue.cancel(again.id)
        stepper.release()
        await queue.stop()
        return job, stepper

    job, stepper = asyncio.run(scenario())
    assert stepper.reached[job.id] == [1]
    assert job.error == "cancelled"


def test_cancel_queued_job_never_runs_it():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper, lanes=1)
        a = queue.enqueue("a")
        b = queue.enqueue("b")
        await _wait_for(lambda: a.status is JobStatus.RUNNING)

        queue.cancel(b.id)
        assert b.status is JobStatus.FAILED
        assert b.error == "cancelled"

        stepper.release()
        await _wait_for(lambda: a.is_terminal)
        await asyncio.sleep(0.01)
        await queue.stop()
        return stepper, b

    stepper, b = asyncio.run(scenario())
    assert stepper.calls == ["a"]
    assert b.started_at is None
    assert b.finished_at is not None


def test_cancel_is_idempotent_on_terminal_jobs():
    async def scenario():
        queue = BackgroundSyncQueue(_instant)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: job.is_terminal)
        before = (job.status, job.finished_at, job.error)
        assert queue.cancel(job.id) is job
        await queue.stop()
        return job, before

    job, before = asyncio.run(scenario())
    assert (job.status, job.finished_at, job.error) == before
    assert job.status is JobStatus.COMPLETED



# ---------- 删除 ----------
def test_remove_rejects_queued_and_running_jobs():
    async def scenario():
        stepper = _Stepper(steps=1)
        queue = BackgroundSyncQueue(stepper, lanes=1)
        running = queue.enqueue("a")
        queued = queue.enqueue("b")
        await _wait_for(lambda: running.status is JobStatus.RUNNING)

        assert queue.remove(running.id) is False
        assert queue.remove(queued.id) is False
        assert queue.get(running.id) is running

        stepper.release()
        await _wait_for(lambda: running.is_terminal)
        assert queue.remove(running.id) is True
        assert queue.get(running.id) is None
        assert running.id not in [j.id for j in queue.list()]

        stepper.release()
        await _wait_for(lambda: queued.is_terminal)
        await queue.stop()

    asyncio.run(scenario())


def test_remove_paused_job_stops_its_routine():
    async def scenario():
        stepper = _Stepper(steps=3)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: stepper.reached.get(job.id) == [1])
        queue.pause(job.id)
        stepper.release()
        await asyncio.sleep(0.01)

        assert queue.remove(job.id) is True
        assert queue.get(job.id) is None
        await _wait_for(lambda: job.is_terminal)
        await asyncio.sleep(0.01)
        # 例程收尾后也不会被写回
        assert queue.get(job.id) is None
        await queue.stop()
        return job, stepper

    job, stepper = asyncio.run(scenario())
    assert stepper.reached[job.id] == [1]


def test_remove_failed_job():
    async def routine(job, control, report):
        raise ValueError("boom")

    async def scenario():
        queue = BackgroundSyncQueue(routine)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: job.is_terminal)
        removed = queue.remove(job.id)
        await queue.stop()
        return queue, removed

    queue, removed = asyncio.run(scenario())
    assert removed is True
    assert queue.list() == []



# ---------- 日志 / 生命周期 ----------
def test_logs_are_capped_to_newest_lines():
    async def routine(job, control, report):
        for i in range(1, 21):
            await control.checkpoint()
            report(SyncProgress("products", i, 20, f"item {i}"))
        return SyncResult(success=True, message="done")

    async def scenario():
        queue = BackgroundSyncQueue(routine, log_max_lines=5)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())
    assert len(job.progress) == 20
    assert len(job.logs) == 5
    assert job.logs[-1].endswith("Finished: done")
    assert job.logs[-2].endswith("products 20/20 - item 20")


def test_enqueue_outside_event_loop_waits_for_start():
    ran = []

    async def routine(job, control, report):
        ran.append(job.id)
        return None

    queue = BackgroundSyncQueue(routine)
    job = queue.enqueue("shop-1")       # 没有事件循环：只排队
    assert job.status is JobStatus.QUEUED
    assert queue.is_running is False

    async def scenario():
        queue.start()
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()

    asyncio.run(scenario())
    assert ran == [job.id]
    assert job.status is JobStatus.COMPLETED


def test_stop_fails_the_running_job():
    async def scenario():
        stepper = _Stepper(steps=3)
        queue = BackgroundSyncQueue(stepper)
        job = queue.enqueue("shop-1")
        await _wait_for(lambda: job.status is JobStatus.RUNNING)
        await queue.stop()
        return queue, job

    queue, job = asyncio.run(scenario())
    assert queue.is_running is False
    assert job.status is JobStatus.FAILED
    assert job.error == "cancelled"
    assert job.finished_at is not None


def test_job_ids_are_never_reused():
    async def scenario():
        queue = BackgroundSyncQueue(_instant)
        ids = set()
        for _ in range(5):
            job = queue.enqueue("shop-1")
            await _wait_for(lambda: job.is_terminal)
            ids.add(job.id)
        await queue.stop()
        return ids

    assert len(asyncio.run(scenario())) == 5


def test_ten_progress_entries_are_recorded_in_order():
    async def routine(job, control, report):
        for i in range(1, 11):
            await control.checkpoint()
            report(SyncProgress("products", i, 10))
        return SyncResult(success=True, message="done")

    async def scenario():
        queue = BackgroundSyncQueue(routine)
        job = queue.enqueue("S1")
        assert job.status is JobStatus.QUEUED
        await _wait_for(lambda: job.is_terminal)
        await queue.stop()
        return job

    job = asyncio.run(scenario())
    assert job.status is JobStatus.COMPLETED
    assert [(p.stage, p.current, p.total) for p in job.progress] == [("products", i, 10) for i in range(1, 11)]
