import asyncio
import logging
import time

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Static

from bitcoin_tui.config import ConnectionConfig
from bitcoin_tui.events import Heartbeat, KeyInput, Quit, Tick
from bitcoin_tui.orchestrator import Orchestrator
from bitcoin_tui.services.notifications import ZmqSubscriber
from bitcoin_tui.services.rpc import RpcClient
from bitcoin_tui.state import AppState
from bitcoin_tui.ui import render_content, render_footer, render_popup, render_tab_bar

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 1.0


class BitcoinTuiApp(App):
    """Thin Textual host: forwards keys and timer ticks, redraws from state."""

    # Everything else goes through on_key so the state machine sees it.
    BINDINGS = [
        Binding("ctrl+c", "quit_app", "Quit", priority=True, show=False),
    ]

    CSS = """
    Screen {
        layout: vertical;
        layers: base overlay;
    }
    #tabs {
        height: 1;
        width: 1fr;
        background: $panel;
    }
    #body {
        height: 1fr;
        width: 1fr;
    }
    #content {
        height: 1fr;
        width: 1fr;
        padding: 0 1;
    }
    #popup {
        layer: overlay;
        dock: top;
        offset: 4 3;
        width: auto;
        max-width: 90%;
        height: auto;
        max-height: 80%;
        background: $surface;
        display: none;
    }
    #footer {
        height: 1;
        width: 1fr;
        background: $panel;
    }
    """

    def __init__(self, config: ConnectionConfig, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.state = AppState.create(zmq_enabled=config.zmq_enabled)
        subscriber = ZmqSubscriber(config.zmq_address) if config.zmq_enabled else None
        self.orchestrator = Orchestrator(
            self.state,
            RpcClient(config),
            render=self.render_state,
            subscriber=subscriber,
        )
        self.tab_bar = Static(id="tabs")
        self.body_view = Static(id="content")
        self.popup_view = Static(id="popup")
        self.footer_bar = Static(id="footer")
        self._runner: asyncio.Future | None = None

    def compose(self) -> ComposeResult:
        yield self.tab_bar
        with Container(id="body"):
            yield self.body_view
        yield self.popup_view
        yield self.footer_bar

    async def on_mount(self) -> None:
        self.title = f"bitcoin-tui {self.config.network}"
        self._runner = asyncio.ensure_future(self._run_orchestrator())
        self.orchestrator.submit(Tick(time.time()))
        self.set_interval(self.config.poll_interval, self._tick)
        self.set_interval(HEARTBEAT_INTERVAL, self._heartbeat)
        self.render_state(self.state)

    async def _run_orchestrator(self) -> None:
        try:
            await self.orchestrator.run()
        except Exception:
            logger.exception("event loop failed")
        self.exit()

    async def on_unmount(self) -> None:
        await self.orchestrator.shutdown()

    def _tick(self) -> None:
        self.orchestrator.submit(Tick(time.time()))

    def _heartbeat(self) -> None:
        self.orchestrator.submit(Heartbeat(time.time()))

    async def on_key(self, event: events.Key) -> None:
        event.prevent_default()
        event.stop()
        self.orchestrator.submit(KeyInput(event.key, event.character))

    def action_quit_app(self) -> None:
        self.orchestrator.submit(Quit())

    def render_state(self, state: AppState) -> None:
        height = self.body_view.size.height or 40
        self.tab_bar.update(render_tab_bar(state))
        self.body_view.update(render_content(state, height))
        self.footer_bar.update(render_footer(state))
        popup = render_popup(state, self.size.height or 30)
        if popup is None:
            self.popup_view.display = False
        else:
            self.popup_view.update(popup)
            self.popup_view.display = True
        if state.should_quit:
            self.exit()


def run(config: ConnectionConfig) -> None:
    BitcoinTuiApp(config).run()
