import asyncio
import logging
from contextlib import suppress
from datetime import datetime
from typing import Callable, NamedTuple, Optional

from ..errors import StoreError

logger = logging.getLogger("expiry")


class SweepResult(NamedTuple):
    removed: int
    failed: int


def sweep_expired(store, now: Optional[datetime] = None) -> SweepResult:
    """
    期限切れ (expires_at < now) のアイテムを削除
    1件の失敗で止めず、件数だけを返す
    """
    removed = 0
    failed = 0

    for item in store.expired(now):
        try:
            store.remove(item.id)
            removed += 1
        except StoreError as e:
            failed += 1
            logger.warning(f"Failed to remove expired item {item.id}: {e}")

    if removed or failed:
        logger.info(f"⏰ Cleaned expired items: {removed} removed, {failed} failed")

    return SweepResult(removed, failed)


class ExpirySweeper:
    """起動直後に1回、以降は interval_minutes ごとに sweep を実行する"""

    def __init__(self, sweep: Callable[[], SweepResult], interval_minutes: float = 60):
        self.sweep = sweep
        self.interval = interval_minutes * 60
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Expiry sweeper started (every {self.interval / 60:g} minutes)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run_once(self) -> SweepResult:
        # ファイル削除と DB アクセスはスレッドで
        return await asyncio.to_thread(self.sweep)

    async def _run(self):
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(self.interval)
