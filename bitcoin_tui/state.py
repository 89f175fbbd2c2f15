import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from bitcoin_tui import catalog
from bitcoin_tui.catalog import MethodDescriptor
from bitcoin_tui.engine import CallFailure, CallResult, CallSuccess, needs_form, prepare_call
from bitcoin_tui.errors import BadArgument, ErrorKind, NoWalletSelected, QueryError
from bitcoin_tui.events import (
    BlockLoaded,
    BlocksDone,
    CallDone,
    CoreDone,
    Effect,
    Event,
    Exit,
    Heartbeat,
    KeyInput,
    LoadBlock,
    LoadWallets,
    PollBlocks,
    PollCore,
    PollSlow,
    Quit,
    RunCall,
    SearchDone,
    SearchTx,
    SlowDone,
    Tick,
    WalletsLoaded,
    ZmqReceived,
    ZmqStatus,
)
from bitcoin_tui.format import format_json
from bitcoin_tui.peers_query import Completion, Query, accept_completion, apply_command, complete, evaluate
from bitcoin_tui.search import SearchResult, txid_candidates
from bitcoin_tui.services.notifications import ZmqEvent, ZmqKind
from bitcoin_tui.telemetry import (
    RECENT_BLOCK_HISTORY,
    SLOW_REFRESH_POLLS,
    BlockchainInfo,
    BlockStats,
    ChainTip,
    MempoolInfo,
    MiningInfo,
    NetTotals,
    NetworkInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_ZMQ_CAPACITY = 500
TX_RATE_SLOTS = 60
PAGE_SIZE = 10


class Tab(Enum):
    DASHBOARD = "dashboard"
    PEERS = "peers"
    RPC = "rpc"
    WALLET = "wallet"
    TRANSACTIONS = "transactions"
    ZMQ = "zmq"

    @property
    def label(self) -> str:
        return {"rpc": "RPC", "zmq": "ZMQ"}.get(self.value, self.value.title())


TABS = list(Tab)


class Focus(Enum):
    TAB_BAR = "tab_bar"
    CONTENT = "content"


class Pane(Enum):
    METHODS = "methods"
    DETAIL = "detail"


@dataclass
class LineEdit:
    """Single-line text field with a cursor."""

    text: str = ""
    cursor: int = 0

    def __post_init__(self) -> None:
        if not self.cursor:
            self.cursor = len(self.text)

    def set(self, text: str, cursor: int | None = None) -> None:
        self.text = text
        self.cursor = len(text) if cursor is None else min(max(cursor, 0), len(text))

    def handle(self, key: KeyInput) -> bool:
        if key.printable:
            self.text = self.text[: self.cursor] + key.character + self.text[self.cursor:]
            self.cursor += 1
        elif key.key == "backspace":
            if self.cursor > 0:
                self.text = self.text[: self.cursor - 1] + self.text[self.cursor:]
                self.cursor -= 1
        elif key.key == "delete":
            self.text = self.text[: self.cursor] + self.text[self.cursor + 1:]
        elif key.key == "left":
            self.cursor = max(0, self.cursor - 1)
        elif key.key == "right":
            self.cursor = min(len(self.text), self.cursor + 1)
        elif key.key in ("home", "ctrl+a"):
            self.cursor = 0
        elif key.key in ("end", "ctrl+e"):
            self.cursor = len(self.text)
        else:
            return False
        return True


def _move(index: int, length: int, key: str) -> int | None:
    """New list index for a navigation key, or None when the key is not one."""
    if key in ("j", "down"):
        delta = 1
    elif key in ("k", "up"):
        delta = -1
    elif key == "pagedown":
        delta = PAGE_SIZE
    elif key == "pageup":
        delta = -PAGE_SIZE
    elif key in ("g", "home"):
        return 0
    elif key in ("G", "end"):
        return max(0, length - 1)
    else:
        return None
    if length == 0:
        return 0
    return min(max(index + delta, 0), length - 1)


# --- popups ----------------------------------------------------------------


@dataclass
class WalletSelectorPopup:
    wallets: list[str] = field(default_factory=list)
    selected: int = 0
    loading: bool = True
    error: str | None = None


@dataclass
class PeerDetailPopup:
    peer: dict
    scroll: int = 0


@dataclass
class QueryHelpPopup:
    scroll: int = 0


@dataclass
class TxSearchPopup:
    edit: LineEdit = field(default_factory=LineEdit)
    error: str | None = None


Popup = WalletSelectorPopup | PeerDetailPopup | QueryHelpPopup | TxSearchPopup


# --- per-tab state ---------------------------------------------------------


@dataclass
class DashboardState:
    blockchain: BlockchainInfo | None = None
    network: NetworkInfo | None = None
    mempool: MempoolInfo | None = None
    mining: MiningInfo | None = None
    nettotals: NetTotals | None = None
    chaintips: list[ChainTip] = field(default_factory=list)
    recent_blocks: list[BlockStats] = field(default_factory=list)
    last_update: float | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    polls_since_slow: int = 0
    last_tip_hash: str | None = None
    tx_rate: deque = field(default_factory=lambda: deque(maxlen=TX_RATE_SLOTS))
    tx_since_tick: int = 0
    scroll: int = 0


@dataclass
class PromptState:
    edit: LineEdit = field(default_factory=LineEdit)
    completion: Completion | None = None
    completion_index: int = 0
    error: str | None = None

    @property
    def highlighted(self) -> str | None:
        if self.completion is None or not self.completion.candidates:
            return None
        return self.completion.candidates[self.completion_index]


@dataclass
class PeersState:
    peers: list[dict] = field(default_factory=list)
    query: Query = field(default_factory=Query)
    rows: list[dict] = field(default_factory=list)
    selected: int = 0
    prompt: PromptState | None = None

    def refresh(self) -> None:
        self.rows = evaluate(self.peers, self.query)
        self.selected = min(self.selected, max(0, len(self.rows) - 1))


@dataclass
class DetailSearch:
    edit: LineEdit = field(default_factory=LineEdit)
    editing: bool = True
    matches: list[int] = field(default_factory=list)
    index: int = 0


@dataclass
class ArgForm:
    method: MethodDescriptor
    edit: LineEdit = field(default_factory=LineEdit)
    error: str | None = None


@dataclass
class RpcPanelState:
    tab: Tab
    methods: tuple[MethodDescriptor, ...] = ()
    pane: Pane = Pane.METHODS
    selected: int = 0
    filter: LineEdit | None = None
    filter_editing: bool = False
    form: ArgForm | None = None
    result: CallResult | None = None
    result_method: str | None = None
    in_flight: bool = False
    request_id: int = 0
    detail_scroll: int = 0
    search: DetailSearch | None = None
    message: str | None = None
    wallet: str | None = None

    @property
    def visible_methods(self) -> list[MethodDescriptor]:
        if self.filter is None or not self.filter.text:
            return list(self.methods)
        needle = self.filter.text.lower()
        return [m for m in self.methods if needle in m.name]

    @property
    def current_method(self) -> MethodDescriptor | None:
        visible = self.visible_methods
        if not visible:
            return None
        return visible[min(self.selected, len(visible) - 1)]

    def clear_modes(self) -> None:
        current = self.current_method
        self.filter = None
        self.filter_editing = False
        self.form = None
        self.search = None
        if current is not None:
            self.selected = self.methods.index(current)


@dataclass
class TransactionsState:
    txid: str | None = None
    result: SearchResult | None = None
    error: str | None = None
    searching: bool = False
    request_id: int = 0
    scroll: int = 0


@dataclass
class ZmqState:
    enabled: bool = False
    capacity: int = DEFAULT_ZMQ_CAPACITY
    events: deque = field(default_factory=deque)
    connected: bool = False
    message: str | None = None
    selected: int = 0
    tx_count: int = 0
    block_count: int = 0
    block: dict | None = None
    block_error: str | None = None
    block_loading: bool = False
    block_request_id: int = 0

    def __post_init__(self) -> None:
        self.events = deque(self.events, maxlen=self.capacity)

    def newest_first(self) -> list[ZmqEvent]:
        return list(reversed(self.events))

    def push(self, event: ZmqEvent) -> None:
        self.events.append(event)
        if self.selected:
            self.selected = min(self.selected + 1, len(self.events) - 1)


def detail_lines(panel: RpcPanelState) -> list[str]:
    """Text of the RPC detail pane: method help, then the last result."""
    lines: list[str] = []
    method = panel.current_method
    if method is not None:
        lines.append(method.signature())
        lines.append("")
        lines.extend(method.summary.splitlines())
        if method.params:
            lines.append("")
            lines.append("Arguments:")
            for i, param in enumerate(method.params, start=1):
                flags = "required" if param.required else "optional"
                if param.default is not None:
                    flags += f", default={param.default}"
                lines.append(f"  {i}. {param.name} ({param.type_hint}, {flags})")
                if param.description:
                    lines.append(f"       {param.description}")
    if panel.in_flight:
        lines.extend(["", "Calling..."])
    elif panel.result is not None:
        lines.append("")
        if isinstance(panel.result, CallSuccess):
            lines.append(f"Result of {panel.result_method} ({panel.result.elapsed * 1000:.0f} ms):")
            lines.extend(format_json(panel.result.value).splitlines())
        else:
            code = f" {panel.result.code}" if panel.result.code is not None else ""
            lines.append(f"Error{code} from {panel.result_method}:")
            lines.extend(panel.result.message.splitlines())
    return lines


# --- root state ------------------------------------------------------------


@dataclass
class AppState:
    active_tab: Tab = Tab.DASHBOARD
    focus: Focus = Focus.TAB_BAR
    popup: Popup | None = None
    should_quit: bool = False
    now: float = 0.0
    dashboard: DashboardState = field(default_factory=DashboardState)
    peers: PeersState = field(default_factory=PeersState)
    rpc: RpcPanelState = field(default_factory=lambda: RpcPanelState(Tab.RPC))
    wallet: RpcPanelState = field(default_factory=lambda: RpcPanelState(Tab.WALLET))
    transactions: TransactionsState = field(default_factory=TransactionsState)
    zmq: ZmqState = field(default_factory=ZmqState)

    @classmethod
    def create(cls, zmq_enabled: bool = False, zmq_capacity: int = DEFAULT_ZMQ_CAPACITY) -> "AppState":
        state = cls(zmq=ZmqState(enabled=zmq_enabled, capacity=zmq_capacity))
        state.rpc.methods = catalog.general_methods()
        state.wallet.methods = catalog.wallet_methods()
        return state

    def panel(self, tab: Tab | str) -> RpcPanelState | None:
        tab = Tab(tab)
        if tab is Tab.RPC:
            return self.rpc
        if tab is Tab.WALLET:
            return self.wallet
        return None

    # --- dispatch ------------------------------------------------------

    def update(self, event: Event) -> list[Effect]:
        """Apply one event and return the I/O the orchestrator should start."""
        if isinstance(event, KeyInput):
            return self._on_key(event)
        if isinstance(event, Tick):
            return self._on_tick(event)
        if isinstance(event, Heartbeat):
            self.now = event.now
            return []
        if isinstance(event, Quit):
            self.should_quit = True
            return [Exit()]
        if isinstance(event, CoreDone):
            return self._on_core(event)
        if isinstance(event, SlowDone):
            return self._on_slow(event)
        if isinstance(event, BlocksDone):
            if event.blocks is not None:
                self.dashboard.recent_blocks = list(event.blocks)
            elif event.error:
                logger.warning("recent blocks poll failed: %s", event.error)
            return []
        if isinstance(event, CallDone):
            return self._on_call_done(event)
        if isinstance(event, WalletsLoaded):
            return self._on_wallets(event)
        if isinstance(event, SearchDone):
            return self._on_search_done(event)
        if isinstance(event, BlockLoaded):
            return self._on_block_loaded(event)
        if isinstance(event, ZmqReceived):
            return self._on_zmq(event)
        if isinstance(event, ZmqStatus):
            self.zmq.connected = event.connected
            self.zmq.message = event.message or None
            return []
        logger.warning("unhandled event %r", event)
        return []

    # --- telemetry -----------------------------------------------------

    def _on_tick(self, event: Tick) -> list[Effect]:
        self.now = event.now
        dash = self.dashboard
        if self.zmq.enabled:
            dash.tx_rate.append(dash.tx_since_tick)
            dash.tx_since_tick = 0
        return [PollCore()]

    def _on_core(self, event: CoreDone) -> list[Effect]:
        dash = self.dashboard
        if event.now:
            self.now = event.now
        if event.snapshot is None:
            dash.error = event.error or "Node unreachable"
            return []
        snap = event.snapshot
        dash.error = None
        dash.warnings = list(snap.errors)
        dash.last_update = event.now or self.now
        if snap.blockchain is not None:
            dash.blockchain = snap.blockchain
        if snap.network is not None:
            dash.network = snap.network
        if snap.mempool is not None:
            dash.mempool = snap.mempool
        if snap.nettotals is not None:
            dash.nettotals = snap.nettotals
        if snap.peers is not None:
            self.peers.peers = snap.peers
            self.peers.refresh()

        effects: list[Effect] = []
        tip_hash = dash.blockchain.bestblockhash if dash.blockchain else None
        tip_changed = tip_hash is not None and tip_hash != dash.last_tip_hash
        dash.polls_since_slow += 1
        if tip_changed or dash.mining is None or dash.polls_since_slow >= SLOW_REFRESH_POLLS:
            dash.polls_since_slow = 0
            effects.append(PollSlow())
        height = dash.blockchain.blocks if dash.blockchain else None
        if height is not None:
            expected = min(RECENT_BLOCK_HISTORY, height + 1)
            newest = dash.recent_blocks[-1].height if dash.recent_blocks else None
            if tip_changed or newest != height or len(dash.recent_blocks) < expected:
                effects.append(PollBlocks(tip=height, known=tuple(dash.recent_blocks)))
        if tip_hash is not None:
            dash.last_tip_hash = tip_hash
        return effects

    def _on_slow(self, event: SlowDone) -> list[Effect]:
        if event.snapshot is None:
            logger.warning("slow poll failed: %s", event.error)
            return []
        if event.snapshot.mining is not None:
            self.dashboard.mining = event.snapshot.mining
        if event.snapshot.chaintips is not None:
            self.dashboard.chaintips = event.snapshot.chaintips
        return []

    # --- keys ----------------------------------------------------------

    def _on_key(self, key: KeyInput) -> list[Effect]:
        if key.key == "ctrl+c":
            self.should_quit = True
            return [Exit()]
        if self.popup is not None:
            return self._on_popup_key(key)
        if self.focus is Focus.TAB_BAR:
            return self._on_tab_bar_key(key)
        if key.key == "escape":
            self._leave_content()
            return []
        handler = {
            Tab.DASHBOARD: self._on_dashboard_key,
            Tab.PEERS: self._on_peers_key,
            Tab.RPC: self._on_rpc_key,
            Tab.WALLET: self._on_rpc_key,
            Tab.TRANSACTIONS: self._on_transactions_key,
            Tab.ZMQ: self._on_zmq_key,
        }[self.active_tab]
        return handler(key)

    def _on_tab_bar_key(self, key: KeyInput) -> list[Effect]:
        index = TABS.index(self.active_tab)
        k = key.key
        if k in ("left", "h", "shift+tab"):
            self.active_tab = TABS[(index - 1) % len(TABS)]
        elif k in ("right", "l", "tab"):
            self.active_tab = TABS[(index + 1) % len(TABS)]
        elif k.isdigit() and 1 <= int(k) <= len(TABS):
            self.active_tab = TABS[int(k) - 1]
        elif k in ("enter", "down"):
            self.focus = Focus.CONTENT
        elif k == "slash" or key.character == "/":
            self.popup = TxSearchPopup()
        elif k == "q":
            self.should_quit = True
            return [Exit()]
        return []

    def _leave_content(self) -> None:
        self.focus = Focus.TAB_BAR
        self.peers.prompt = None
        self.rpc.clear_modes()
        self.wallet.clear_modes()

    # --- popups --------------------------------------------------------

    def _on_popup_key(self, key: KeyInput) -> list[Effect]:
        popup = self.popup
        if key.key == "escape":
            self.popup = None
            return []
        if isinstance(popup, WalletSelectorPopup):
            moved = _move(popup.selected, len(popup.wallets), key.key)
            if moved is not None:
                popup.selected = moved
            elif key.key == "enter" and popup.wallets:
                self.wallet.wallet = popup.wallets[popup.selected]
                self.wallet.message = f"Using wallet {self.wallet.wallet or '(default wallet)'}"
                self.popup = None
            return []
        if isinstance(popup, (PeerDetailPopup, QueryHelpPopup)):
            if key.key in ("j", "down"):
                popup.scroll += 1
            elif key.key in ("k", "up"):
                popup.scroll = max(0, popup.scroll - 1)
            elif key.key in ("pagedown", "ctrl+d"):
                popup.scroll += PAGE_SIZE
            elif key.key in ("pageup", "ctrl+u"):
                popup.scroll = max(0, popup.scroll - PAGE_SIZE)
            elif key.key in ("g", "home"):
                popup.scroll = 0
            elif key.key in ("enter", "q"):
                self.popup = None
            return []
        if isinstance(popup, TxSearchPopup):
            if key.key == "enter":
                text = popup.edit.text.strip()
                try:
                    txid_candidates(text)
                except BadArgument as e:
                    popup.error = e.message
                    return []
                self.popup = None
                return self._start_search(text)
            if popup.edit.handle(key):
                popup.error = None
            return []
        return []

    # --- dashboard -----------------------------------------------------

    def _on_dashboard_key(self, key: KeyInput) -> list[Effect]:
        moved = _move(self.dashboard.scroll, len(self.dashboard.recent_blocks), key.key)
        if moved is not None:
            self.dashboard.scroll = moved
        return []

    # --- peers ---------------------------------------------------------

    def _on_peers_key(self, key: KeyInput) -> list[Effect]:
        peers = self.peers
        if peers.prompt is not None:
            self._on_prompt_key(key)
            return []
        moved = _move(peers.selected, len(peers.rows), key.key)
        if moved is not None:
            peers.selected = moved
        elif key.key == "enter":
            if peers.rows:
                self.popup = PeerDetailPopup(peers.rows[peers.selected])
        elif key.character == ":":
            peers.prompt = PromptState()
        elif key.character == "?":
            self.popup = QueryHelpPopup()
        return []

    def _on_prompt_key(self, key: KeyInput) -> None:
        peers = self.peers
        prompt = peers.prompt
        edit = prompt.edit
        if key.key in ("tab", "shift+tab"):
            if prompt.completion is None:
                completion = complete(edit.text, edit.cursor, peers.peers)
                if not completion.candidates:
                    return
                prompt.completion = completion
                prompt.completion_index = 0 if key.key == "tab" else len(completion.candidates) - 1
            else:
                step = 1 if key.key == "tab" else -1
                prompt.completion_index = (prompt.completion_index + step) % len(prompt.completion.candidates)
            return
        if key.key in ("right", "enter") and prompt.highlighted is not None:
            text, cursor = accept_completion(edit.text, prompt.completion, prompt.highlighted)
            edit.set(text, cursor)
            prompt.completion = None
            return
        if key.key == "enter":
            if not edit.text.strip():
                peers.prompt = None
                return
            try:
                peers.query = apply_command(peers.query, edit.text)
            except QueryError as e:
                prompt.error = f"{e.message} (at column {e.position + 1})"
                return
            logger.debug("peer query now %r", peers.query.describe())
            peers.prompt = None
            peers.refresh()
            return
        if edit.handle(key):
            prompt.completion = None
            prompt.error = None

    # --- rpc / wallet --------------------------------------------------

    def _on_rpc_key(self, key: KeyInput) -> list[Effect]:
        panel = self.panel(self.active_tab)
        if panel.form is not None:
            return self._on_form_key(panel, key)
        if panel.filter_editing:
            if key.key == "enter":
                panel.filter_editing = False
            elif panel.filter.handle(key):
                panel.selected = 0
            return []
        if panel.search is not None and panel.search.editing:
            self._on_search_edit_key(panel, key)
            return []
        if key.key == "tab":
            panel.pane = Pane.DETAIL if panel.pane is Pane.METHODS else Pane.METHODS
            return []
        if key.character == "w" and panel.tab is Tab.WALLET:
            self.popup = WalletSelectorPopup()
            return [LoadWallets()]
        if panel.pane is Pane.METHODS:
            return self._on_methods_key(panel, key)
        return self._on_detail_key(panel, key)

    def _on_methods_key(self, panel: RpcPanelState, key: KeyInput) -> list[Effect]:
        moved = _move(panel.selected, len(panel.visible_methods), key.key)
        if moved is not None:
            if moved != panel.selected:
                panel.detail_scroll = 0
                panel.search = None
            panel.selected = moved
        elif key.character == "/":
            panel.filter = LineEdit()
            panel.filter_editing = True
            panel.selected = 0
        elif key.key == "enter":
            return self._select_method(panel)
        return []

    def _on_detail_key(self, panel: RpcPanelState, key: KeyInput) -> list[Effect]:
        k = key.key
        if k == "enter":
            return self._select_method(panel)
        if k in ("j", "down"):
            panel.detail_scroll += 1
        elif k in ("k", "up"):
            panel.detail_scroll = max(0, panel.detail_scroll - 1)
        elif k in ("ctrl+d", "pagedown"):
            panel.detail_scroll += PAGE_SIZE
        elif k in ("ctrl+u", "pageup"):
            panel.detail_scroll = max(0, panel.detail_scroll - PAGE_SIZE)
        elif k in ("g", "home"):
            panel.detail_scroll = 0
        elif key.character == "/":
            panel.search = DetailSearch()
        elif key.character in ("n", "N") and panel.search is not None and panel.search.matches:
            step = 1 if key.character == "n" else -1
            search = panel.search
            search.index = (search.index + step) % len(search.matches)
            panel.detail_scroll = search.matches[search.index]
        return []

    def _on_search_edit_key(self, panel: RpcPanelState, key: KeyInput) -> None:
        search = panel.search
        if key.key == "enter":
            search.editing = False
            needle = search.edit.text.lower()
            search.matches = (
                [i for i, line in enumerate(detail_lines(panel)) if needle in line.lower()] if needle else []
            )
            search.index = 0
            if search.matches:
                panel.detail_scroll = search.matches[0]
            return
        search.edit.handle(key)

    def _select_method(self, panel: RpcPanelState) -> list[Effect]:
        method = panel.current_method
        if method is None:
            return []
        if needs_form(method):
            panel.form = ArgForm(method)
            panel.pane = Pane.DETAIL
            return []
        return self._dispatch(panel, method, "")

    def _on_form_key(self, panel: RpcPanelState, key: KeyInput) -> list[Effect]:
        form = panel.form
        if key.key == "enter":
            return self._dispatch(panel, form.method, form.edit.text)
        if form.edit.handle(key):
            form.error = None
        return []

    def _dispatch(self, panel: RpcPanelState, method: MethodDescriptor, text: str) -> list[Effect]:
        if panel.in_flight:
            panel.message = f"Busy: waiting for {panel.result_method}"
            return []
        try:
            request = prepare_call(method, text, panel.wallet)
        except NoWalletSelected as e:
            panel.form = None
            panel.result = CallFailure(ErrorKind.NO_WALLET_SELECTED, str(e))
            panel.result_method = method.name
            return []
        except BadArgument as e:
            if panel.form is not None:
                panel.form.error = e.message
            else:
                panel.result = CallFailure(ErrorKind.BAD_ARGUMENT, e.message)
                panel.result_method = method.name
            return []
        panel.form = None
        panel.message = None
        panel.in_flight = True
        panel.request_id += 1
        panel.result = None
        panel.result_method = method.name
        panel.detail_scroll = 0
        panel.search = None
        logger.info("calling %s (wallet=%s)", method.name, request.wallet)
        return [RunCall(panel.tab.value, panel.request_id, request)]

    def _on_call_done(self, event: CallDone) -> list[Effect]:
        panel = self.panel(event.panel)
        if panel is None or event.request_id != panel.request_id:
            logger.debug("dropping stale call result for %s", event.panel)
            return []
        panel.in_flight = False
        panel.result = event.result
        panel.message = None
        return []

    def _on_wallets(self, event: WalletsLoaded) -> list[Effect]:
        popup = self.popup
        if not isinstance(popup, WalletSelectorPopup):
            return []
        popup.loading = False
        if event.wallets is None:
            popup.error = event.error or "listwallets failed"
            return []
        popup.wallets = list(event.wallets)
        if self.wallet.wallet in popup.wallets:
            popup.selected = popup.wallets.index(self.wallet.wallet)
        if not popup.wallets:
            popup.error = "No wallets loaded. Use loadwallet or createwallet on the RPC tab"
        return []

    # --- transactions --------------------------------------------------

    def _on_transactions_key(self, key: KeyInput) -> list[Effect]:
        tx = self.transactions
        if key.key == "enter" or key.character == "/":
            self.popup = TxSearchPopup(edit=LineEdit(tx.txid or ""))
            return []
        if key.key in ("j", "down"):
            tx.scroll += 1
        elif key.key in ("k", "up"):
            tx.scroll = max(0, tx.scroll - 1)
        elif key.key in ("ctrl+d", "pagedown"):
            tx.scroll += PAGE_SIZE
        elif key.key in ("ctrl+u", "pageup"):
            tx.scroll = max(0, tx.scroll - PAGE_SIZE)
        elif key.key in ("g", "home"):
            tx.scroll = 0
        return []

    def _start_search(self, txid: str) -> list[Effect]:
        tx = self.transactions
        tx.request_id += 1
        tx.txid = txid
        tx.result = None
        tx.error = None
        tx.searching = True
        tx.scroll = 0
        self.active_tab = Tab.TRANSACTIONS
        self.focus = Focus.CONTENT
        return [SearchTx(tx.request_id, txid)]

    def _on_search_done(self, event: SearchDone) -> list[Effect]:
        tx = self.transactions
        if event.request_id != tx.request_id:
            logger.debug("dropping stale search result %d", event.request_id)
            return []
        tx.searching = False
        tx.result = event.result
        tx.error = event.error
        return []

    # --- zmq -----------------------------------------------------------

    def _on_zmq(self, event: ZmqReceived) -> list[Effect]:
        zmq = self.zmq
        zmq.push(event.event)
        zmq.connected = True
        if event.event.kind is ZmqKind.HASH_TX:
            zmq.tx_count += 1
            self.dashboard.tx_since_tick += 1
            return []
        zmq.block_count += 1
        return [PollCore()]

    def _on_zmq_key(self, key: KeyInput) -> list[Effect]:
        zmq = self.zmq
        entries = zmq.newest_first()
        moved = _move(zmq.selected, len(entries), key.key)
        if moved is not None:
            zmq.selected = moved
            return []
        if key.key != "enter" or not entries:
            return []
        entry = entries[min(zmq.selected, len(entries) - 1)]
        if entry.kind is ZmqKind.HASH_TX:
            return self._start_search(entry.hash)
        zmq.block_request_id += 1
        zmq.block_loading = True
        zmq.block = None
        zmq.block_error = None
        return [LoadBlock(zmq.block_request_id, entry.hash)]

    def _on_block_loaded(self, event: BlockLoaded) -> list[Effect]:
        zmq = self.zmq
        if event.request_id != zmq.block_request_id:
            return []
        zmq.block_loading = False
        zmq.block = event.block
        zmq.block_error = event.error
        return []
