#!/usr/bin/env python3
"""
Ticker service - a small long-running process driven by initsys

- init:   open a fake connection pool (callback style) and load settings
- start:  launch the status API on http://127.0.0.1:8080
- ready:  tick once per second until Ctrl+C / SIGTERM / POST /lifecycle/shutdown
- stop:   stop the API, flush the ticker
- finish: close the pool

Run:
    python samples/ticker_service.py [options.yaml]
"""
import asyncio
import sys

from initsys import LifecycleController, LifecycleEventType, callback_task, load_options
from initsys.api import APIServerWrapper, create_app
from initsys.models.enums import LogCategory
from initsys.utils.logger import configure_logger, get_logger

log = get_logger().for_category(LogCategory.GENERAL)


class Pool:
    def __init__(self):
        self.open = False

    def connect(self, done):
        log.info("Connecting pool...")
        asyncio.get_running_loop().call_later(0.2, self._connected, done)

    def _connected(self, done):
        self.open = True
        done()

    async def close(self):
        await asyncio.sleep(0.1)
        self.open = False
        log.info("Pool closed")


class Ticker:
    priority = 10

    def __init__(self):
        self.ticks = 0
        self._task = None

    async def start(self):
        self._task = asyncio.create_task(self._run(), name="Ticker")

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        log.info(f"Ticker stopped after {self.ticks} ticks")

    async def _run(self):
        while True:
            await asyncio.sleep(1)
            self.ticks += 1
            log.info("tick", count=self.ticks)


def main():
    options = load_options(sys.argv[1]) if len(sys.argv) > 1 else None
    controller = LifecycleController(options, log_times=True)
    configure_logger(controller.options.log_level)

    pool = Pool()
    ticker = Ticker()
    api = APIServerWrapper(create_app(controller, title="Ticker"), port=8080)

    controller.init(callback_task(pool.connect), priority=1)
    controller.add_handler(ticker)
    api.register(controller, priority=1)
    controller.finish(pool.close)

    controller.on(LifecycleEventType.READY, lambda event: log.info("Press Ctrl+C to stop"))
    return asyncio.run(controller.run())


if __name__ == "__main__":
    sys.exit(main())
