import pytest

from bitcoin_tui import catalog
from bitcoin_tui.engine import CallFailure, CallSuccess
from bitcoin_tui.errors import ErrorKind
from bitcoin_tui.events import (
    BlockLoaded,
    BlocksDone,
    CallDone,
    CoreDone,
    Exit,
    KeyInput,
    LoadBlock,
    LoadWallets,
    PollBlocks,
    PollCore,
    PollSlow,
    RunCall,
    SearchDone,
    SearchTx,
    SlowDone,
    Tick,
    WalletsLoaded,
    ZmqReceived,
)
from bitcoin_tui.search import NotFound
from bitcoin_tui.services.notifications import ZmqEvent, ZmqKind
from bitcoin_tui.state import (
    AppState,
    Focus,
    Pane,
    PeerDetailPopup,
    QueryHelpPopup,
    Tab,
    TxSearchPopup,
    WalletSelectorPopup,
    detail_lines,
)
from bitcoin_tui.telemetry import BlockchainInfo, BlockStats, CoreSnapshot, MiningInfo, SlowSnapshot

from conftest import TXID

CHARACTER_KEYS = {" ": "space", "/": "slash", ":": "colon", "?": "question_mark", "=": "equals_sign"}


def key(name, character=None):
    if character is None and len(name) == 1:
        character = name
    return KeyInput(name, character)


def press(state, *names):
    effects = []
    for name in names:
        effects = state.update(key(name))
    return effects


def type_text(state, text):
    for ch in text:
        state.update(KeyInput(CHARACTER_KEYS.get(ch, ch), ch))


def enter_tab(state, tab):
    state.active_tab = tab
    state.focus = Focus.CONTENT


def select_method(state, name):
    panel = state.panel(state.active_tab)
    panel.selected = panel.methods.index(catalog.find(name))
    return panel


def snapshot(height=850000, tip="00" * 32, peers=None):
    return CoreSnapshot(
        blockchain=BlockchainInfo(chain="main", blocks=height, headers=height, bestblockhash=tip),
        peers=peers,
    )


@pytest.fixture
def state():
    return AppState.create()


class TestTabBar:
    def test_initial_state(self, state):
        assert state.active_tab is Tab.DASHBOARD
        assert state.focus is Focus.TAB_BAR

    def test_cycle_and_jump(self, state):
        press(state, "right")
        assert state.active_tab is Tab.PEERS
        press(state, "left", "left")
        assert state.active_tab is Tab.ZMQ
        press(state, "tab")
        assert state.active_tab is Tab.DASHBOARD
        press(state, "4")
        assert state.active_tab is Tab.WALLET
        press(state, "9")
        assert state.active_tab is Tab.WALLET

    def test_enter_content(self, state):
        press(state, "3", "enter")
        assert (state.active_tab, state.focus) == (Tab.RPC, Focus.CONTENT)

    def test_tab_keys_ignored_in_content(self, state):
        press(state, "enter", "l", "right", "2", "shift+tab")
        assert (state.active_tab, state.focus) == (Tab.DASHBOARD, Focus.CONTENT)

    def test_quit(self, state):
        assert press(state, "q") == [Exit()]
        assert state.should_quit

    def test_ctrl_c_from_anywhere(self, state):
        enter_tab(state, Tab.PEERS)
        state.popup = QueryHelpPopup()
        assert press(state, "ctrl+c") == [Exit()]

    def test_slash_opens_tx_search(self, state):
        state.update(KeyInput("slash", "/"))
        assert isinstance(state.popup, TxSearchPopup)


class TestEscape:
    def _rpc_form(self, state):
        enter_tab(state, Tab.RPC)
        state.update(KeyInput("slash", "/"))
        type_text(state, "getblockh")
        press(state, "enter", "enter")
        assert state.rpc.form is not None
        type_text(state, '"00')

    def _detail_search(self, state):
        enter_tab(state, Tab.WALLET)
        press(state, "tab")
        state.update(KeyInput("slash", "/"))
        type_text(state, "wallet")

    def _peer_prompt(self, state):
        state.update(CoreDone(snapshot=snapshot(peers=[{"id": 1, "addr": "a"}])))
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, "where ")
        press(state, "tab")

    def _plain(self, state):
        enter_tab(state, Tab.TRANSACTIONS)

    @pytest.mark.parametrize("setup", ["_rpc_form", "_detail_search", "_peer_prompt", "_plain"])
    def test_one_step_back_to_tab_bar(self, state, setup):
        getattr(self, setup)(state)
        tab = state.active_tab
        assert press(state, "escape") == []
        assert (state.active_tab, state.focus) == (tab, Focus.TAB_BAR)
        assert state.peers.prompt is None
        for panel in (state.rpc, state.wallet):
            assert panel.form is None
            assert panel.filter is None
            assert panel.search is None

    def test_filter_cleared_but_selection_kept(self, state):
        enter_tab(state, Tab.RPC)
        state.update(KeyInput("slash", "/"))
        type_text(state, "getmempoolinfo")
        press(state, "enter", "escape")
        assert state.rpc.current_method.name == "getmempoolinfo"


class TestPopups:
    def test_popup_is_modal(self, state):
        state.update(KeyInput("slash", "/"))
        type_text(state, "12q")
        assert state.popup.edit.text == "12q"
        assert state.active_tab is Tab.DASHBOARD
        assert not state.should_quit

    def test_escape_cancels_without_effects(self, state):
        state.update(KeyInput("slash", "/"))
        type_text(state, TXID)
        assert press(state, "escape") == []
        assert state.popup is None
        assert state.transactions.txid is None

    def test_invalid_txid_keeps_popup(self, state):
        state.update(KeyInput("slash", "/"))
        type_text(state, "nothex")
        assert press(state, "enter") == []
        assert state.popup.error

    def test_valid_txid_starts_search(self, state):
        state.update(KeyInput("slash", "/"))
        type_text(state, TXID)
        effects = press(state, "enter")
        assert effects == [SearchTx(1, TXID)]
        assert state.popup is None
        assert (state.active_tab, state.focus) == (Tab.TRANSACTIONS, Focus.CONTENT)
        assert state.transactions.searching

    def test_peer_detail_and_help(self, state):
        state.update(CoreDone(snapshot=snapshot(peers=[{"id": 7}])))
        enter_tab(state, Tab.PEERS)
        press(state, "enter")
        assert state.popup == PeerDetailPopup({"id": 7})
        press(state, "j", "j", "k")
        assert state.popup.scroll == 1
        press(state, "escape")
        state.update(KeyInput("question_mark", "?"))
        assert isinstance(state.popup, QueryHelpPopup)
        assert state.focus is Focus.CONTENT


class TestRpcPanel:
    def test_zero_param_method_dispatches(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblockchaininfo")
        effects = press(state, "enter")
        assert len(effects) == 1
        call = effects[0]
        assert isinstance(call, RunCall)
        assert call.panel == "rpc"
        assert call.request.method.name == "getblockchaininfo"
        assert state.rpc.in_flight

    def test_busy_rejects_second_call(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblockchaininfo")
        press(state, "enter")
        select_method(state, "getblockcount")
        assert press(state, "enter") == []
        assert state.rpc.message.startswith("Busy")

    def test_result_and_stale_drop(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblockcount")
        call = press(state, "enter")[0]
        state.update(CallDone("rpc", call.request_id - 1, CallSuccess(1, 0.0)))
        assert state.rpc.in_flight
        state.update(CallDone("rpc", call.request_id, CallSuccess(850000, 0.012)))
        assert not state.rpc.in_flight
        lines = detail_lines(state.rpc)
        assert "Result of getblockcount (12 ms):" in lines
        assert lines[-1] == "850000"

    def test_form_for_methods_with_params(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblockhash")
        assert press(state, "enter") == []
        assert state.rpc.form.method.name == "getblockhash"
        assert state.rpc.pane is Pane.DETAIL
        type_text(state, "100")
        call = press(state, "enter")[0]
        assert call.request.params == (100,)
        assert state.rpc.form is None

    def test_bad_argument_stays_in_form(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblockhash")
        press(state, "enter")
        type_text(state, "abc")
        assert press(state, "enter") == []
        assert "Argument 1" in state.rpc.form.error
        press(state, "backspace")
        assert state.rpc.form.error is None

    def test_filter_narrows_list(self, state):
        enter_tab(state, Tab.RPC)
        state.update(KeyInput("slash", "/"))
        type_text(state, "mempool")
        names = [m.name for m in state.rpc.visible_methods]
        assert names and all("mempool" in n for n in names)

    def test_detail_search(self, state):
        enter_tab(state, Tab.RPC)
        select_method(state, "getblock")
        press(state, "tab")
        state.update(KeyInput("slash", "/"))
        type_text(state, "verbosity")
        press(state, "enter")
        search = state.rpc.search
        assert len(search.matches) >= 2
        assert state.rpc.detail_scroll == search.matches[0]
        state.update(KeyInput("n", "n"))
        assert state.rpc.detail_scroll == search.matches[1]
        state.update(KeyInput("N", "N"))
        assert state.rpc.detail_scroll == search.matches[0]


class TestWalletPanel:
    def test_no_wallet_selected(self, state):
        enter_tab(state, Tab.WALLET)
        select_method(state, "getwalletinfo")
        assert press(state, "enter") == []
        assert isinstance(state.wallet.result, CallFailure)
        assert state.wallet.result.kind is ErrorKind.NO_WALLET_SELECTED
        assert not state.wallet.in_flight

    def test_no_wallet_from_form(self, state):
        enter_tab(state, Tab.WALLET)
        select_method(state, "getbalance")
        press(state, "enter")
        assert press(state, "enter") == []
        assert state.wallet.result.kind is ErrorKind.NO_WALLET_SELECTED

    def test_select_wallet_then_call(self, state):
        enter_tab(state, Tab.WALLET)
        assert press(state, "w") == [LoadWallets()]
        assert state.popup.loading
        state.update(WalletsLoaded(wallets=["", "savings"]))
        press(state, "j", "enter")
        assert state.popup is None
        assert state.wallet.wallet == "savings"
        select_method(state, "getwalletinfo")
        call = press(state, "enter")[0]
        assert call.panel == "wallet"
        assert call.request.wallet == "savings"

    def test_current_wallet_preselected(self, state):
        state.wallet.wallet = "savings"
        enter_tab(state, Tab.WALLET)
        press(state, "w")
        state.update(WalletsLoaded(wallets=["", "cold", "savings"]))
        assert state.popup.selected == 2

    def test_no_wallets_loaded(self, state):
        enter_tab(state, Tab.WALLET)
        press(state, "w")
        state.update(WalletsLoaded(wallets=[]))
        assert isinstance(state.popup, WalletSelectorPopup)
        assert "No wallets" in state.popup.error
        press(state, "enter")
        assert state.wallet.wallet is None


class TestPeersTab:
    def test_navigation_on_empty_list(self, state):
        enter_tab(state, Tab.PEERS)
        press(state, "j", "G", "enter")
        assert state.peers.selected == 0
        assert state.popup is None

    def test_query_filters_rows(self, state, peers):
        state.update(CoreDone(snapshot=snapshot(peers=peers)))
        assert len(state.peers.rows) == 3
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, 'where version == 70016 and subver ~= "Satoshi:27"')
        press(state, "enter")
        assert state.peers.prompt is None
        assert [p["id"] for p in state.peers.rows] == [1]

    def test_query_reapplied_on_poll(self, state, peers):
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, "where inbound == true")
        press(state, "enter")
        state.update(CoreDone(snapshot=snapshot(peers=peers)))
        assert [p["id"] for p in state.peers.rows] == [2]

    def test_parse_error_shown_in_prompt(self, state):
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, "where version")
        press(state, "enter")
        assert state.peers.prompt.error == "Expected an operator after version (at column 14)"

    def test_completion_cycles_without_editing(self, state, peers):
        state.update(CoreDone(snapshot=snapshot(peers=peers)))
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, "where ")
        prompt = state.peers.prompt
        press(state, "tab")
        candidates = prompt.completion.candidates
        seen = [prompt.highlighted]
        for _ in range(len(candidates)):
            press(state, "tab")
            seen.append(prompt.highlighted)
        assert seen == list(candidates) + [candidates[0]]
        assert prompt.edit.text == "where "
        press(state, "shift+tab")
        assert prompt.highlighted == candidates[-1]

    def test_accept_completion(self, state, peers):
        state.update(CoreDone(snapshot=snapshot(peers=peers)))
        enter_tab(state, Tab.PEERS)
        state.update(KeyInput("colon", ":"))
        type_text(state, "sort netw")
        press(state, "tab", "enter")
        prompt = state.peers.prompt
        assert prompt.edit.text == "sort network "
        assert prompt.completion is None
        press(state, "enter")
        assert state.peers.query.sort.field_path == "network"


class TestTelemetry:
    def test_tick_polls_core(self, state):
        assert state.update(Tick(100.0)) == [PollCore()]
        assert state.now == 100.0

    def test_first_core_poll_requests_slow_and_blocks(self, state):
        effects = state.update(CoreDone(snapshot=snapshot(height=100), now=5.0))
        assert PollSlow() in effects
        assert PollBlocks(tip=100, known=()) in effects
        assert state.dashboard.last_update == 5.0

    def test_steady_state_polls_nothing_extra(self, state):
        state.update(CoreDone(snapshot=snapshot(height=100)))
        state.update(SlowDone(snapshot=SlowSnapshot(mining=MiningInfo(blocks=100))))
        blocks = [BlockStats(height=h) for h in range(29, 101)]
        state.update(BlocksDone(blocks=blocks))
        assert state.update(CoreDone(snapshot=snapshot(height=100))) == []

    def test_slow_poll_every_sixth(self, state):
        state.update(CoreDone(snapshot=snapshot(height=0)))
        state.update(SlowDone(snapshot=SlowSnapshot(mining=MiningInfo(blocks=0))))
        state.update(BlocksDone(blocks=[BlockStats(height=0)]))
        results = [state.update(CoreDone(snapshot=snapshot(height=0))) for _ in range(6)]
        assert [PollSlow() in r for r in results] == [False] * 5 + [True]

    def test_new_tip_refreshes(self, state):
        state.update(CoreDone(snapshot=snapshot(height=0)))
        state.update(SlowDone(snapshot=SlowSnapshot(mining=MiningInfo(blocks=0))))
        state.update(BlocksDone(blocks=[BlockStats(height=0)]))
        effects = state.update(CoreDone(snapshot=snapshot(height=1, tip="11" * 32)))
        assert PollSlow() in effects
        assert PollBlocks(tip=1, known=(BlockStats(height=0),)) in effects

    def test_connection_error_keeps_last_data(self, state):
        state.update(CoreDone(snapshot=snapshot(height=100)))
        assert state.update(CoreDone(error="Connection failed: refused")) == []
        assert state.dashboard.error == "Connection failed: refused"
        assert state.dashboard.blockchain.blocks == 100
        state.update(CoreDone(snapshot=snapshot(height=100)))
        assert state.dashboard.error is None

    def test_partial_errors_become_warnings(self, state):
        snap = snapshot()
        snap.errors.append("getmempoolinfo: Loading mempool")
        state.update(CoreDone(snapshot=snap))
        assert state.dashboard.warnings == ["getmempoolinfo: Loading mempool"]


class TestTransactionsTab:
    def test_stale_search_dropped(self, state):
        state.update(KeyInput("slash", "/"))
        type_text(state, TXID)
        press(state, "enter")
        state.update(SearchDone(0, result=NotFound("x")))
        assert state.transactions.searching
        state.update(SearchDone(1, result=NotFound(TXID)))
        assert state.transactions.result == NotFound(TXID)
        assert not state.transactions.searching

    def test_enter_prefills_last_txid(self, state):
        state.transactions.txid = TXID
        enter_tab(state, Tab.TRANSACTIONS)
        press(state, "enter")
        assert state.popup.edit.text == TXID


class TestZmqTab:
    def _event(self, n, kind=ZmqKind.HASH_TX):
        return ZmqReceived(ZmqEvent(kind, f"{n:064x}"))

    def test_ring_buffer_capacity(self):
        state = AppState.create(zmq_enabled=True, zmq_capacity=3)
        for n in range(5):
            state.update(self._event(n))
        assert len(state.zmq.events) == 3
        assert [e.hash for e in state.zmq.newest_first()] == [f"{n:064x}" for n in (4, 3, 2)]
        assert state.zmq.tx_count == 5

    def test_block_triggers_core_poll(self):
        state = AppState.create(zmq_enabled=True)
        assert state.update(self._event(1, ZmqKind.HASH_BLOCK)) == [PollCore()]
        assert state.zmq.connected

    def test_tx_rate_per_tick(self):
        state = AppState.create(zmq_enabled=True)
        for n in range(3):
            state.update(self._event(n))
        state.update(Tick(1.0))
        state.update(Tick(2.0))
        assert list(state.dashboard.tx_rate) == [3, 0]

    def test_enter_on_tx_searches(self):
        state = AppState.create(zmq_enabled=True)
        state.update(self._event(1))
        state.update(ZmqReceived(ZmqEvent(ZmqKind.HASH_TX, TXID)))
        enter_tab(state, Tab.ZMQ)
        assert press(state, "enter") == [SearchTx(1, TXID)]
        assert state.active_tab is Tab.TRANSACTIONS

    def test_enter_on_block_loads_it(self):
        state = AppState.create(zmq_enabled=True)
        state.update(self._event(9, ZmqKind.HASH_BLOCK))
        enter_tab(state, Tab.ZMQ)
        assert press(state, "enter") == [LoadBlock(1, f"{9:064x}")]
        assert state.zmq.block_loading
        state.update(BlockLoaded(0, block={"height": 1}))
        assert state.zmq.block is None
        state.update(BlockLoaded(1, block={"height": 850001}))
        assert state.zmq.block == {"height": 850001}
        assert not state.zmq.block_loading

    def test_empty_list_enter_is_noop(self):
        state = AppState.create(zmq_enabled=True)
        enter_tab(state, Tab.ZMQ)
        assert press(state, "j", "enter") == []
