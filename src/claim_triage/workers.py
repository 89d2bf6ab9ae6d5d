"""
Process pool for the CPU-bound per-image work (quality signals, fingerprints).

Every worker process owns an inbound pipe and runs its tasks one at a time,
in the order they were posted to it. Tasks are dealt round-robin. Replies
come back as `(task_id, result, error)` on each worker's outbound pipe; a
collector thread in the parent waits on all of them at once, matches replies
to pending futures by task id and drops anything it does not recognise
(late, duplicate or foreign replies).

Only plain pipes are used, no queues or semaphores, so the pool also runs
where /dev/shm is missing (AWS Lambda).

    with WorkerPool(2) as pool:
        fingerprint = pool.submit("hash", data).result()
"""
from __future__ import annotations
import atexit, itertools, logging, multiprocessing, queue, threading
from concurrent.futures import Future
from multiprocessing.connection import wait
from typing import Any, Callable, Dict, List, Optional

from .dedup import digest_fingerprint, perceptual_fingerprint
from .quality import measure_quality

log = logging.getLogger(__name__)

WORKER_COUNT = 2

TASKS: Dict[str, Callable[[bytes], Any]] = {
    "analyze": measure_quality,
    "hash":    digest_fingerprint,
    "phash":   perceptual_fingerprint,
}


class WorkerTaskError(RuntimeError):
    """A task failed inside its worker; the worker itself keeps running."""


class WorkerPoolClosed(RuntimeError):
    pass


def _worker_main(inbox, outbox) -> None:
    while True:
        try:
            msg = inbox.recv()
        except EOFError:
            break
        if msg is None:
            break
        task_id, kind, data = msg
        try:
            result = TASKS[kind](data)
        except Exception as exc:
            outbox.send((task_id, None, f"{type(exc).__name__}: {exc}"))
        else:
            outbox.send((task_id, result, None))


class WorkerPool:
    def __init__(self, size: int = WORKER_COUNT):
        if size < 1:
            raise ValueError("worker pool needs at least one worker")

        ctx = multiprocessing.get_context("spawn")
        self._workers = []
        self._senders = []    # parent write ends, one per worker
        self._replies = []    # parent read ends, one per worker
        for n in range(size):
            task_r, task_w = ctx.Pipe(duplex=False)
            reply_r, reply_w = ctx.Pipe(duplex=False)
            w = ctx.Process(target=_worker_main, args=(task_r, reply_w),
                            name=f"claim-triage-worker-{n}", daemon=True)
            w.start()
            # drop the parent's copies of the child ends so EOF propagates
            task_r.close()
            reply_w.close()
            self._workers.append(w)
            self._senders.append(task_w)
            self._replies.append(reply_r)

        # a send blocks until the worker reads, so each worker gets a feeder
        # thread and submit() never waits on a busy process
        self._outgoing: List[queue.SimpleQueue] = [queue.SimpleQueue() for _ in range(size)]
        self._feeders = [
            threading.Thread(target=self._feed, args=(out, conn),
                             name=f"claim-triage-feeder-{n}", daemon=True)
            for n, (out, conn) in enumerate(zip(self._outgoing, self._senders))
        ]

        self._task_ids = itertools.count(1)
        self._next_worker = 0
        self._pending: Dict[int, Future] = {}
        self._lock = threading.Lock()
        self._closed = False

        for t in self._feeders:
            t.start()
        self._collector = threading.Thread(target=self._collect,
                                           name="claim-triage-collector",
                                           daemon=True)
        self._collector.start()
        log.info("worker pool started with %d workers", size)

    @property
    def size(self) -> int:
        return len(self._workers)

    def submit(self, kind: str, data: bytes) -> Future:
        if kind not in TASKS:
            raise ValueError(f"unknown task kind {kind!r}")

        fut: Future = Future()
        with self._lock:
            if self._closed:
                raise WorkerPoolClosed("worker pool is closed")
            task_id = next(self._task_ids)
            worker = self._next_worker
            self._next_worker = (worker + 1) % len(self._workers)
            self._pending[task_id] = fut
            self._outgoing[worker].put((task_id, kind, data))

        log.debug("task %d (%s) -> worker %d", task_id, kind, worker)
        return fut

    # --- dispatch side ------------------------------------------------------
    def _feed(self, outgoing: queue.SimpleQueue, conn) -> None:
        while True:
            msg = outgoing.get()
            try:
                conn.send(msg)
            except OSError as exc:
                log.warning("worker pipe closed (%s), feeder stopping", exc)
                break
            if msg is None:
                break
        conn.close()

    # --- completion side ----------------------------------------------------
    def _collect(self) -> None:
        readers = list(self._replies)
        while readers:
            for conn in wait(readers):
                try:
                    reply = conn.recv()
                except (EOFError, OSError):
                    readers.remove(conn)
                    conn.close()
                    continue
                self._resolve(*reply)

    def _resolve(self, task_id: int, result: Any, error: Optional[str]) -> None:
        with self._lock:
            fut = self._pending.pop(task_id, None)
        if fut is None:
            log.debug("dropping reply for unknown task %s", task_id)
            return
        if not fut.set_running_or_notify_cancel():
            return   # caller cancelled
        if error is not None:
            fut.set_exception(WorkerTaskError(error))
        else:
            fut.set_result(result)

    # --- lifecycle ----------------------------------------------------------
    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        # workers finish whatever is already queued before the sentinel
        for out in self._outgoing:
            out.put(None)
        for t in self._feeders:
            t.join(timeout)
        for w in self._workers:
            w.join(timeout)
            if w.is_alive():
                log.warning("worker %s did not stop, terminating", w.name)
                w.terminate()

        # every worker has exited, so the collector sees EOF on each pipe
        self._collector.join(timeout)

        with self._lock:
            pending, self._pending = self._pending, {}
        for fut in pending.values():
            if fut.set_running_or_notify_cancel():
                fut.set_exception(WorkerPoolClosed("worker pool closed before task finished"))

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


_default_pool: Optional[WorkerPool] = None
_default_lock = threading.Lock()


def get_worker_pool(size: int = WORKER_COUNT) -> WorkerPool:
    """Process-wide pool, created on first use and closed at exit."""
    global _default_pool
    with _default_lock:
        if _default_pool is None:
            _default_pool = WorkerPool(size)
            atexit.register(_default_pool.close)
        return _default_pool
