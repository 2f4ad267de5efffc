import asyncio
from typing import Any, Dict, Optional
from storefront.common.retries import retry_async
from storefront.config.settings import config_settings
from storefront.notifications.constants import logger
from storefront.notifications.sms import KavenegarClient, send_sms_safe
from storefront.notifications.templates import render_template

SENTINEL = None  # queue sentinel


class NotificationWorker():
    """
    In-process queue of SMS jobs consumed by a few worker loops.

    Producers call publish() after their transaction committed ; it never blocks and
    never raises. Each job is retried on transient provider errors on its own, a
    failed SMS is logged and dropped.
    """

    def __init__(self, sms_client: Optional[KavenegarClient] = None,
                 workers_count: int = config_settings.NOTIFY_WORKERS,
                 max_queue_size: int = config_settings.NOTIFY_QUEUE_SIZE,
                 max_retries: int = config_settings.NOTIFY_MAX_RETRIES,
                 backoff_base: float = 0.5):
        self.sms_client = sms_client or KavenegarClient()
        self.queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue(maxsize=max_queue_size)
        self.worker_loops: Dict[str, asyncio.Task] = {}
        self.workers_count: int = workers_count
        self.processed = 0
        self.failed = 0
        self._send = retry_async(attempts=max_retries, base_delay=backoff_base)(self.sms_client.send)

    async def start(self):
        if not self.worker_loops:
            for i in range(self.workers_count):
                cur_worker_name = f"notify-worker:{i+1}"
                self.worker_loops[cur_worker_name] = asyncio.create_task(self._worker_loop(cur_worker_name))
                logger.info("notifications.worker.started", extra={"worker": cur_worker_name})

    def publish(self, event: str, receptor: Optional[str], **context: Any) -> bool:
        if not receptor:
            logger.debug("notifications.publish.no_receptor", extra={"event": event})
            return False
        try:
            self.queue.put_nowait({"event": event, "receptor": receptor, "context": context})
        except asyncio.QueueFull:
            logger.warning("notifications.publish.queue_full", extra={"event": event, "qsize": self.queue.qsize()})
            return False
        return True

    async def stop(self):
        """Send one sentinel per worker loop."""
        for _ in range(len(self.worker_loops)):
            await self.queue.put(SENTINEL)

    async def shutdown(self, *, drain_first: bool = True, drain_timeout: float = 30.0, wait_timeout: float = 30.0):
        """Graceful stop: optionally wait for the queue to drain, then send sentinels and await the loops."""
        if drain_first:
            try:
                await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
                logger.debug("notifications.worker.drained")
            except asyncio.TimeoutError:
                logger.warning("notifications.worker.drain_timeout", extra={"qsize": self.queue.qsize()})

        await self.stop()

        for name, task in self.worker_loops.items():
            try:
                await asyncio.wait_for(task, timeout=wait_timeout)
            except asyncio.TimeoutError:
                logger.warning("notifications.worker.cancelling", extra={"worker": name})
                task.cancel()
                try:
                    await asyncio.wait_for(task, timeout=5.0)
                except (asyncio.CancelledError, asyncio.TimeoutError):
                    logger.warning("notifications.worker.cancelled", extra={"worker": name})
        self.worker_loops.clear()

    async def _worker_loop(self, cur_worker_name):
        while True:
            qitem = await self.queue.get()
            try:
                if qitem is SENTINEL:
                    logger.info("notifications.worker.sentinel", extra={"worker": cur_worker_name})
                    break
                try:
                    await self.task_executor(qitem, cur_worker_name)
                except Exception:
                    self.failed += 1
                    logger.exception("notifications.worker.task_failed", extra={
                        "worker": cur_worker_name, "event": qitem.get("event"),
                    })
            finally:
                # ALWAYS mark done for each get()
                self.queue.task_done()

        logger.info("notifications.worker.exited", extra={"worker": cur_worker_name})

    async def task_executor(self, task: Dict[str, Any], wname: str) -> None:
        event = task["event"]
        message = render_template(event, **task.get("context", {}))

        sent = await send_sms_safe(self.sms_client, task["receptor"], message,
                                   context=f"{event}@{wname}", send=self._send)
        if sent:
            self.processed += 1
        else:
            self.failed += 1
