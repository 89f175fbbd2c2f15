"""Rich renderables for each part of the screen, built from the app state."""

import json

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bitcoin_tui.engine import CallFailure
from bitcoin_tui.format import (
    PLACEHOLDER,
    connection_type,
    format_bool,
    format_btc,
    format_bytes,
    format_difficulty,
    format_duration,
    format_hashrate,
    format_json,
    format_number,
    format_optional,
    format_percent,
    format_ping,
    format_relative_time,
    format_sat_vb,
    format_timestamp,
    format_weight,
    short_hash,
)
from bitcoin_tui.peers_query import HELP_TEXT
from bitcoin_tui.search import ConfirmedHit, MempoolHit, NotFound
from bitcoin_tui.services.notifications import ZmqKind
from bitcoin_tui.state import (
    TABS,
    AppState,
    Focus,
    LineEdit,
    Pane,
    PeerDetailPopup,
    QueryHelpPopup,
    RpcPanelState,
    Tab,
    TxSearchPopup,
    WalletSelectorPopup,
    detail_lines,
)

SPARK_CHARS = "▁▂▃▄▅▆▇█"
SELECTED = "reverse"


def _window(length: int, selected: int, height: int) -> tuple[int, int]:
    """Slice bounds that keep ``selected`` visible in ``height`` rows."""
    height = max(1, height)
    start = min(max(0, selected - height // 2), max(0, length - height))
    return start, min(length, start + height)


def _input_line(prefix: str, edit: LineEdit, style: str = "bold") -> Text:
    line = Text(prefix, style=style)
    line.append(edit.text[: edit.cursor])
    under = edit.text[edit.cursor: edit.cursor + 1] or " "
    line.append(under, style="reverse")
    line.append(edit.text[edit.cursor + 1:])
    return line


def _kv_table(rows: list[tuple[str, str]]) -> Table:
    table = Table.grid(padding=(0, 1))
    table.add_column(style="dim", no_wrap=True)
    table.add_column(no_wrap=True)
    for label, value in rows:
        table.add_row(label, value)
    return table


def sparkline(values: list[int]) -> str:
    if not values:
        return ""
    top = max(values) or 1
    return "".join(SPARK_CHARS[min(len(SPARK_CHARS) - 1, v * (len(SPARK_CHARS) - 1) // top)] for v in values)


# --- chrome ----------------------------------------------------------------


def render_tab_bar(state: AppState) -> Text:
    bar = Text()
    for number, tab in enumerate(TABS, start=1):
        label = f" {number} {tab.label} "
        if tab is state.active_tab:
            style = "bold reverse" if state.focus is Focus.TAB_BAR else "bold underline"
            bar.append(label, style=style)
        else:
            bar.append(label, style="dim")
        bar.append(" ")
    wallet = state.wallet.wallet
    if wallet is not None:
        bar.append(f"  wallet: {wallet or '(default)'}", style="cyan")
    return bar


def _hints(state: AppState) -> str:
    popup = state.popup
    if isinstance(popup, TxSearchPopup):
        return "enter search  esc cancel"
    if isinstance(popup, WalletSelectorPopup):
        return "j/k move  enter select  esc cancel"
    if popup is not None:
        return "j/k scroll  esc close"
    if state.focus is Focus.TAB_BAR:
        return "←/→ tabs  1-6 jump  enter open  / find tx  q quit"
    tab = state.active_tab
    if tab is Tab.PEERS:
        if state.peers.prompt is not None:
            return "tab complete  enter run  esc close"
        return "j/k move  enter details  : query  ? help  esc back"
    if tab in (Tab.RPC, Tab.WALLET):
        panel = state.panel(tab)
        if panel.form is not None:
            return 'args as JSON, e.g. "*", 6  enter call  esc back'
        hints = "tab pane  / filter  enter call  esc back"
        if panel.pane is Pane.DETAIL:
            hints = "j/k scroll  ^u/^d page  / search  n/N next  esc back"
        if tab is Tab.WALLET:
            hints = "w wallet  " + hints
        return hints
    if tab is Tab.TRANSACTIONS:
        return "/ search  j/k scroll  esc back"
    if tab is Tab.ZMQ:
        return "j/k select  enter open  esc back"
    return "j/k scroll blocks  esc back"


def render_footer(state: AppState) -> Text:
    footer = Text(_hints(state), style="dim")
    dash = state.dashboard
    footer.append("   ")
    if dash.error:
        footer.append(f"✖ {dash.error}", style="bold red")
    elif dash.last_update is not None:
        age = max(0, int(state.now - dash.last_update))
        footer.append(f"↻ {age}s ago", style="green")
    else:
        footer.append("connecting...", style="yellow")
    return footer


# --- dashboard -------------------------------------------------------------


def render_dashboard(state: AppState, height: int = 40) -> RenderableType:
    dash = state.dashboard
    chain = dash.blockchain
    net = dash.network
    pool = dash.mempool
    mining = dash.mining

    kpis = Table.grid(padding=(0, 3))
    for _ in range(6):
        kpis.add_column(no_wrap=True)
    kpis.add_row(
        Text("Chain", style="dim"),
        Text("Height", style="dim"),
        Text("Peers", style="dim"),
        Text("Mempool txs", style="dim"),
        Text("Min fee", style="dim"),
        Text("Hashrate", style="dim"),
    )
    kpis.add_row(
        Text(format_optional(chain.chain if chain else None), style="bold"),
        Text(format_number(chain.blocks if chain else None), style="bold"),
        Text(format_number(net.connections if net else None), style="bold"),
        Text(format_number(pool.size if pool else None), style="bold"),
        Text(format_sat_vb(pool.mempoolminfee if pool else None), style="bold"),
        Text(format_hashrate(mining.networkhashps if mining else None), style="bold"),
    )

    parts: list[RenderableType] = [kpis]
    if chain is not None and chain.verificationprogress is not None and chain.verificationprogress < 0.9999:
        width = 40
        filled = int(chain.verificationprogress * width)
        bar = Text("Sync ", style="dim")
        bar.append("█" * filled, style="green")
        bar.append("░" * (width - filled), style="dim")
        bar.append(f" {format_percent(chain.verificationprogress)}")
        bar.append(f"  headers {format_number(chain.headers)}", style="dim")
        parts.append(bar)

    chain_rows = [
        ("Best block", short_hash(chain.bestblockhash if chain else None)),
        ("Headers", format_number(chain.headers if chain else None)),
        ("Difficulty", format_difficulty(chain.difficulty if chain else None)),
        ("Median time", format_timestamp(chain.mediantime if chain else None)),
        ("Size on disk", format_bytes(chain.size_on_disk if chain else None)),
        ("Pruned", format_bool(chain.pruned if chain else None)),
        ("Chain tips", str(len(dash.chaintips)) if dash.chaintips else PLACEHOLDER),
    ]
    net_rows = [
        ("Version", format_optional(net.subversion if net else None)),
        ("Protocol", format_optional(net.protocolversion if net else None)),
        ("In / out", f"{format_number(net.connections_in)} / {format_number(net.connections_out)}" if net else PLACEHOLDER),
        ("Reachable", ", ".join(net.reachable) if net and net.reachable else PLACEHOLDER),
        ("Received", format_bytes(dash.nettotals.totalbytesrecv if dash.nettotals else None)),
        ("Sent", format_bytes(dash.nettotals.totalbytessent if dash.nettotals else None)),
        ("Relay fee", format_sat_vb(net.relayfee if net else None)),
    ]
    mempool_rows = [
        ("Transactions", format_number(pool.size if pool else None)),
        ("Size", format_bytes(pool.bytes if pool else None)),
        ("Memory", f"{format_bytes(pool.usage)} / {format_bytes(pool.maxmempool)}" if pool else PLACEHOLDER),
        ("Total fees", format_btc(pool.total_fee if pool else None)),
        ("Min fee", format_sat_vb(pool.mempoolminfee if pool else None)),
        ("Min relay", format_sat_vb(pool.minrelaytxfee if pool else None)),
        ("Unbroadcast", format_number(pool.unbroadcastcount if pool else None)),
    ]
    summary = Table.grid(padding=(0, 2), expand=True)
    for _ in range(3):
        summary.add_column(ratio=1)
    summary.add_row(
        Panel(_kv_table(chain_rows), title="Chain", border_style="blue"),
        Panel(_kv_table(net_rows), title="Network", border_style="magenta"),
        Panel(_kv_table(mempool_rows), title="Mempool", border_style="yellow"),
    )
    parts.append(summary)

    if state.zmq.enabled:
        rate = list(dash.tx_rate)
        line = Text("ZMQ tx/tick ", style="dim")
        line.append(sparkline(rate), style="cyan")
        if rate:
            line.append(f"  last {rate[-1]}  max {max(rate)}", style="dim")
        parts.append(line)

    warnings = [w for w in (chain.warnings if chain else None, net.warnings if net else None) if w]
    for warning in warnings + dash.warnings:
        parts.append(Text(f"⚠ {warning}", style="yellow"))

    blocks = Table(title="Recent blocks", expand=True, header_style="bold", show_edge=False)
    for column in ("Height", "Age", "Txs", "Size", "Weight", "Avg fee", "Pool"):
        blocks.add_column(column, no_wrap=True, justify="right" if column not in ("Pool", "Age") else "left")
    rows = list(reversed(dash.recent_blocks))
    room = max(3, height - 22)
    start, end = _window(len(rows), dash.scroll, room)
    for index in range(start, end):
        block = rows[index]
        blocks.add_row(
            format_number(block.height),
            format_relative_time(block.time, state.now or None),
            format_number(block.txs),
            format_bytes(block.total_size),
            format_weight(block.total_weight),
            f"{block.avgfeerate} sat/vB" if block.avgfeerate is not None else PLACEHOLDER,
            format_optional(block.pool),
            style=SELECTED if state.focus is Focus.CONTENT and index == dash.scroll else None,
        )
    parts.append(blocks)
    return Group(*parts)


# --- peers -----------------------------------------------------------------


def render_peers(state: AppState, height: int = 40) -> RenderableType:
    peers = state.peers
    parts: list[RenderableType] = []
    header = Text(f"{len(peers.rows)} of {len(peers.peers)} peers", style="bold")
    if not peers.query.is_empty:
        header.append(f"   {peers.query.describe()}", style="cyan")
    parts.append(header)

    prompt = peers.prompt
    if prompt is not None:
        parts.append(_input_line(": ", prompt.edit))
        if prompt.completion is not None:
            options = Text("  ")
            for i, candidate in enumerate(prompt.completion.candidates[:20]):
                style = SELECTED if i == prompt.completion_index else "dim"
                options.append(candidate, style=style)
                options.append("  ")
            parts.append(options)
        if prompt.error:
            parts.append(Text(prompt.error, style="red"))

    table = Table(expand=True, header_style="bold", show_edge=False)
    for column in ("Id", "Address", "Net", "Type", "Dir", "Client", "Ping", "Recv", "Sent", "Height"):
        table.add_column(column, no_wrap=True, overflow="ellipsis")
    start, end = _window(len(peers.rows), peers.selected, max(3, height - 6))
    for index in range(start, end):
        peer = peers.rows[index]
        table.add_row(
            format_optional(peer.get("id")),
            format_optional(peer.get("addr")),
            format_optional(peer.get("network")),
            connection_type(peer.get("connection_type")),
            "in" if peer.get("inbound") else "out",
            format_optional(peer.get("subver")),
            format_ping(peer.get("pingtime")),
            format_bytes(peer.get("bytesrecv")),
            format_bytes(peer.get("bytessent")),
            format_number(peer.get("synced_blocks")),
            style=SELECTED if state.focus is Focus.CONTENT and index == peers.selected else None,
        )
    parts.append(table)
    if not peers.rows:
        parts.append(Text("No peers match" if peers.peers else "No peer data yet", style="dim"))
    return Group(*parts)


# --- rpc / wallet ----------------------------------------------------------


def _method_list(panel: RpcPanelState, active: bool, height: int) -> RenderableType:
    visible = panel.visible_methods
    lines = Text()
    if panel.filter is not None:
        lines.append_text(_input_line("/", panel.filter) if panel.filter_editing else Text(f"/{panel.filter.text}", style="cyan"))
        lines.append("\n")
    start, end = _window(len(visible), panel.selected, height - 3)
    for index in range(start, end):
        method = visible[index]
        style = ""
        if index == panel.selected:
            style = SELECTED if active and panel.pane is Pane.METHODS else "bold"
        lines.append(method.name, style=style)
        lines.append("\n")
    if not visible:
        lines.append("no matching methods", style="dim")
    return Panel(lines, title=f"Methods ({len(visible)})", border_style="cyan" if panel.pane is Pane.METHODS else "dim")


def _detail_pane(panel: RpcPanelState, active: bool, height: int) -> RenderableType:
    parts: list[RenderableType] = []
    if panel.form is not None:
        parts.append(_input_line(f"{panel.form.method.name} ", panel.form.edit))
        if panel.form.error:
            parts.append(Text(panel.form.error, style="red"))
    if panel.message:
        parts.append(Text(panel.message, style="yellow"))
    search = panel.search
    if search is not None:
        if search.editing:
            parts.append(_input_line("search: ", search.edit))
        elif search.matches:
            parts.append(Text(f"match {search.index + 1}/{len(search.matches)} for {search.edit.text!r}", style="cyan"))
        elif search.edit.text:
            parts.append(Text(f"no match for {search.edit.text!r}", style="dim"))

    lines = detail_lines(panel)
    body = Text()
    needle = search.edit.text.lower() if search is not None and not search.editing else ""
    room = max(3, height - len(parts) - 3)
    for number, line in enumerate(lines[panel.detail_scroll: panel.detail_scroll + room], start=panel.detail_scroll):
        style = ""
        if number == 0:
            style = "bold"
        elif isinstance(panel.result, CallFailure) and line.startswith("Error"):
            style = "bold red"
        text = Text(line, style=style)
        if needle:
            text.highlight_words([needle], style="black on yellow", case_sensitive=False)
        body.append_text(text)
        body.append("\n")
    parts.append(body)
    title = "Detail"
    if panel.tab is Tab.WALLET:
        title = f"Detail - wallet {panel.wallet!r}" if panel.wallet is not None else "Detail - no wallet (press w)"
    return Panel(Group(*parts), title=title, border_style="cyan" if panel.pane is Pane.DETAIL else "dim")


def render_rpc(state: AppState, panel: RpcPanelState, height: int = 40) -> RenderableType:
    active = state.focus is Focus.CONTENT
    layout = Table.grid(expand=True, padding=(0, 1))
    layout.add_column(width=32)
    layout.add_column(ratio=1)
    layout.add_row(_method_list(panel, active, height), _detail_pane(panel, active, height))
    return layout


# --- transactions ----------------------------------------------------------


def transaction_lines(state: AppState) -> list[Text]:
    tx = state.transactions
    if tx.searching:
        return [Text(f"Searching for {tx.txid}...", style="yellow")]
    if tx.error:
        return [Text(tx.error, style="red")]
    result = tx.result
    if result is None:
        return [Text("Press / to look up a transaction by txid", style="dim")]
    if isinstance(result, NotFound):
        return [
            Text(f"{result.txid} not found", style="bold"),
            Text("Not in the mempool, and the node has no -txindex entry for it", style="dim"),
        ]
    lines = [Text(result.txid, style="bold")]
    if isinstance(result, MempoolHit):
        rows = [
            ("Status", "in mempool"),
            ("Fee", format_btc(result.fee)),
            ("Fee rate", format_sat_vb(result.fee / result.vsize * 1000) if result.fee is not None and result.vsize else PLACEHOLDER),
            ("Size", f"{format_number(result.vsize)} vB / {format_weight(result.weight)}"),
            ("Ancestors", format_number(result.ancestor_count)),
            ("Descendants", format_number(result.descendant_count)),
            ("First seen", format_relative_time(result.time, state.now or None)),
        ]
    elif isinstance(result, ConfirmedHit):
        rows = [
            ("Status", "confirmed"),
            ("Confirmations", format_number(result.confirmations)),
            ("Block", f"{format_number(result.block_height)}  {short_hash(result.block_hash)}"),
            ("Block time", format_timestamp(result.block_time)),
            ("Age", format_duration(result.age)),
            ("Size", f"{format_number(result.vsize)} vB / {format_weight(result.weight)}"),
            ("Inputs / outputs", f"{format_number(result.inputs)} / {format_number(result.outputs)}"),
        ]
    for label, value in rows:
        line = Text(f"{label:<18}", style="dim")
        line.append(value)
        lines.append(line)
    if result.decoded is not None:
        lines.append(Text(""))
        lines.append(Text("Decoded", style="bold"))
        lines.extend(Text(line) for line in format_json(result.decoded).splitlines())
    return lines


def render_transactions(state: AppState, height: int = 40) -> RenderableType:
    lines = transaction_lines(state)
    scroll = min(state.transactions.scroll, max(0, len(lines) - 1))
    return Group(*lines[scroll: scroll + max(3, height)])


# --- zmq -------------------------------------------------------------------


def _block_summary(block: dict) -> RenderableType:
    rows = [
        ("Hash", format_optional(block.get("hash"))),
        ("Height", format_number(block.get("height"))),
        ("Time", format_timestamp(block.get("time"))),
        ("Transactions", format_number(block.get("nTx"))),
        ("Size", format_bytes(block.get("size"))),
        ("Weight", format_weight(block.get("weight"))),
        ("Difficulty", format_difficulty(block.get("difficulty"))),
        ("Confirmations", format_number(block.get("confirmations"))),
    ]
    return Panel(_kv_table(rows), title="Block", border_style="green")


def render_zmq(state: AppState, height: int = 40) -> RenderableType:
    zmq = state.zmq
    if not zmq.enabled:
        return Text(
            "ZMQ is not configured. Start bitcoind with -zmqpubhashtx and -zmqpubhashblock,\n"
            "then pass --zmqport (or set zmqpubhashtx in bitcoin.conf).",
            style="dim",
        )
    status = Text("● live" if zmq.connected else "○ offline", style="green" if zmq.connected else "red")
    status.append(f"   {zmq.tx_count} tx  {zmq.block_count} blocks  buffer {len(zmq.events)}/{zmq.capacity}", style="dim")
    if zmq.message and not zmq.connected:
        status.append(f"   {zmq.message}", style="red")
    parts: list[RenderableType] = [status]

    entries = zmq.newest_first()
    lines = Text()
    start, end = _window(len(entries), zmq.selected, max(3, height - 14))
    for index in range(start, end):
        entry = entries[index]
        style = SELECTED if state.focus is Focus.CONTENT and index == zmq.selected else ""
        kind_style = "cyan" if entry.kind is ZmqKind.HASH_TX else "bold green"
        lines.append(f"{entry.kind.value:<10}", style=style or kind_style)
        lines.append(entry.hash, style=style)
        lines.append("\n")
    if not entries:
        lines.append("waiting for notifications...", style="dim")
    parts.append(lines)

    if zmq.block_loading:
        parts.append(Text("Loading block...", style="yellow"))
    elif zmq.block_error:
        parts.append(Text(zmq.block_error, style="red"))
    elif zmq.block is not None:
        parts.append(_block_summary(zmq.block))
    return Group(*parts)


# --- popups ----------------------------------------------------------------


def render_popup(state: AppState, height: int = 30) -> RenderableType | None:
    popup = state.popup
    if popup is None:
        return None
    if isinstance(popup, TxSearchPopup):
        lines = [Text("Enter a txid (64 hex characters)", style="dim"), _input_line("> ", popup.edit)]
        if popup.error:
            lines.append(Text(popup.error, style="red"))
        return Panel(Group(*lines), title="Find transaction", border_style="cyan", width=80)
    if isinstance(popup, WalletSelectorPopup):
        if popup.loading:
            body: RenderableType = Text("Loading wallets...", style="yellow")
        elif popup.error and not popup.wallets:
            body = Text(popup.error, style="red")
        else:
            body = Text()
            for index, name in enumerate(popup.wallets):
                body.append(name or "(default wallet)", style=SELECTED if index == popup.selected else "")
                body.append("\n")
        return Panel(body, title="Select wallet", border_style="cyan", width=50)
    if isinstance(popup, PeerDetailPopup):
        lines = json.dumps(popup.peer, indent=2).splitlines()
        scroll = min(popup.scroll, max(0, len(lines) - 1))
        shown = "\n".join(lines[scroll: scroll + max(3, height - 4)])
        title = f"Peer {popup.peer.get('id', '')} {popup.peer.get('addr', '')}"
        return Panel(Text(shown), title=title, border_style="cyan")
    if isinstance(popup, QueryHelpPopup):
        lines = HELP_TEXT.splitlines()
        scroll = min(popup.scroll, max(0, len(lines) - 1))
        return Panel(Text("\n".join(lines[scroll:])), title="Peer query help", border_style="cyan")
    return None


def render_content(state: AppState, height: int = 40) -> RenderableType:
    tab = state.active_tab
    if tab is Tab.DASHBOARD:
        return render_dashboard(state, height)
    if tab is Tab.PEERS:
        return render_peers(state, height)
    if tab in (Tab.RPC, Tab.WALLET):
        return render_rpc(state, state.panel(tab), height)
    if tab is Tab.TRANSACTIONS:
        return render_transactions(state, height)
    return render_zmq(state, height)
