import asyncio
import logging
import time
from typing import Callable

from bitcoin_tui.engine import CallFailure, execute_call, list_wallets
from bitcoin_tui.errors import ErrorKind, RpcConnectionError, TuiError, describe_error
from bitcoin_tui.events import (
    POLL_EFFECTS,
    BlockLoaded,
    BlocksDone,
    CallDone,
    CoreDone,
    Effect,
    Event,
    Exit,
    LoadBlock,
    LoadWallets,
    PollBlocks,
    PollCore,
    PollSlow,
    RunCall,
    SearchDone,
    SearchTx,
    SlowDone,
    WalletsLoaded,
    ZmqReceived,
    ZmqStatus,
    describe,
)
from bitcoin_tui.search import search_transaction
from bitcoin_tui.services.notifications import ZmqEvent, ZmqSubscriber
from bitcoin_tui.services.rpc import RpcClient
from bitcoin_tui.state import AppState
from bitcoin_tui.telemetry import fetch_blocks, fetch_core, fetch_slow

logger = logging.getLogger(__name__)


def _failed(effect: Effect, error: str, now: float) -> Event:
    if isinstance(effect, PollCore):
        return CoreDone(error=error, now=now)
    if isinstance(effect, PollSlow):
        return SlowDone(error=error)
    return BlocksDone(error=error)


class Orchestrator:
    """Single consumer of the event queue.

    Producers (key presses, timers, the ZMQ listener and finished RPC work)
    call ``submit``; ``run`` applies one event at a time to the state, starts
    the effects it returns and re-renders.
    """

    def __init__(
        self,
        state: AppState,
        rpc: RpcClient,
        render: Callable[[AppState], None] | None = None,
        subscriber: ZmqSubscriber | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state = state
        self.rpc = rpc
        self.render = render
        self.subscriber = subscriber
        self.clock = clock
        self.queue: asyncio.Queue = asyncio.Queue()
        self._polls: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._zmq_task: asyncio.Task | None = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def submit(self, event: Event) -> None:
        if self._stopped:
            logger.debug("discarding %s after shutdown", describe(event))
            return
        self.queue.put_nowait(event)

    def in_flight(self, poll_class: str) -> bool:
        task = self._polls.get(poll_class)
        return task is not None and not task.done()

    async def run(self) -> None:
        if self.subscriber is not None:
            self._zmq_task = asyncio.ensure_future(self.subscriber.run(self._on_zmq_event, self._on_zmq_status))
        try:
            while not self._stopped:
                event = await self.queue.get()
                if not self.dispatch(event):
                    break
        finally:
            await self.shutdown()

    def dispatch(self, event: Event) -> bool:
        """Apply one event. Returns False once the loop should stop."""
        effects = self.state.update(event)
        keep_running = not self.state.should_quit
        for effect in effects:
            if isinstance(effect, Exit):
                keep_running = False
            else:
                self._start(effect)
        if self.render is not None:
            self.render(self.state)
        return keep_running

    def _start(self, effect: Effect) -> None:
        if isinstance(effect, POLL_EFFECTS):
            poll_class = effect.poll_class
            if self.in_flight(poll_class):
                logger.debug("skipping %s poll, previous one still running", poll_class)
                return
            self._polls[poll_class] = asyncio.ensure_future(self._poll(effect))
            return
        task = asyncio.ensure_future(self._perform(effect))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _blocking(self, fn, *args):
        return await asyncio.get_running_loop().run_in_executor(None, fn, *args)

    async def _poll(self, effect: Effect) -> None:
        try:
            try:
                done = await self._fetch(effect)
            except RpcConnectionError as e:
                done = _failed(effect, describe_error(e), self.clock())
            except Exception as e:
                logger.exception("%s poll failed", effect.poll_class)
                done = _failed(effect, str(e) or type(e).__name__, self.clock())
        finally:
            self._polls.pop(effect.poll_class, None)
        self.submit(done)

    async def _fetch(self, effect: Effect) -> Event:
        if isinstance(effect, PollCore):
            snapshot = await self._blocking(fetch_core, self.rpc)
            return CoreDone(snapshot=snapshot, now=self.clock())
        if isinstance(effect, PollSlow):
            return SlowDone(snapshot=await self._blocking(fetch_slow, self.rpc))
        blocks = await self._blocking(fetch_blocks, self.rpc, effect.tip, effect.known)
        return BlocksDone(blocks=blocks)

    async def _perform(self, effect: Effect) -> None:
        if isinstance(effect, RunCall):
            try:
                result = await self._blocking(execute_call, self.rpc, effect.request)
            except Exception as e:
                logger.exception("%s raised", effect.request.method.name)
                result = CallFailure(ErrorKind.CONNECTION, str(e))
            self.submit(CallDone(effect.panel, effect.request_id, result))
        elif isinstance(effect, LoadWallets):
            try:
                wallets = await self._blocking(list_wallets, self.rpc)
                self.submit(WalletsLoaded(wallets=wallets))
            except TuiError as e:
                self.submit(WalletsLoaded(error=describe_error(e)))
        elif isinstance(effect, SearchTx):
            try:
                result = await self._blocking(search_transaction, self.rpc, effect.txid)
                self.submit(SearchDone(effect.request_id, result=result))
            except TuiError as e:
                self.submit(SearchDone(effect.request_id, error=describe_error(e)))
        elif isinstance(effect, LoadBlock):
            try:
                block = await self._blocking(self.rpc.getblock, effect.block_hash, 1)
                self.submit(BlockLoaded(effect.request_id, block=block if isinstance(block, dict) else None))
            except TuiError as e:
                self.submit(BlockLoaded(effect.request_id, error=describe_error(e)))
        else:
            logger.warning("unknown effect %s", describe(effect))

    async def _on_zmq_event(self, event: ZmqEvent) -> None:
        self.submit(ZmqReceived(event))

    async def _on_zmq_status(self, connected: bool, message: str) -> None:
        self.submit(ZmqStatus(connected, message))

    async def shutdown(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.info("shutting down: %d poll(s), %d call(s) pending", len(self._polls), len(self._tasks))
        pending = list(self._polls.values())
        if self._zmq_task is not None:
            pending.append(self._zmq_task)
        for task in pending:
            task.cancel()
        # User calls are left to finish; their results are dropped by submit().
        self._tasks.clear()
        self._polls.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self.subscriber is not None:
            self.subscriber.close()
