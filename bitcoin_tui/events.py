"""Inputs to the state machine and the effects it asks the orchestrator to run."""

from dataclasses import dataclass
from typing import Any

from bitcoin_tui.engine import CallRequest, CallResult
from bitcoin_tui.search import SearchResult
from bitcoin_tui.services.notifications import ZmqEvent
from bitcoin_tui.telemetry import BlockStats, CoreSnapshot, SlowSnapshot


# --- events ----------------------------------------------------------------


@dataclass(frozen=True)
class KeyInput:
    """A key press using Textual key names (``enter``, ``shift+tab``, ``ctrl+c``)."""

    key: str
    character: str | None = None

    @property
    def printable(self) -> bool:
        return self.character is not None and len(self.character) == 1 and self.character.isprintable()


@dataclass(frozen=True)
class Tick:
    now: float


@dataclass(frozen=True)
class Heartbeat:
    now: float


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class CoreDone:
    snapshot: CoreSnapshot | None = None
    error: str | None = None
    now: float = 0.0


@dataclass(frozen=True)
class SlowDone:
    snapshot: SlowSnapshot | None = None
    error: str | None = None


@dataclass(frozen=True)
class BlocksDone:
    blocks: list[BlockStats] | None = None
    error: str | None = None


@dataclass(frozen=True)
class CallDone:
    panel: str
    request_id: int
    result: CallResult


@dataclass(frozen=True)
class WalletsLoaded:
    wallets: list[str] | None = None
    error: str | None = None


@dataclass(frozen=True)
class SearchDone:
    request_id: int
    result: SearchResult | None = None
    error: str | None = None


@dataclass(frozen=True)
class BlockLoaded:
    request_id: int
    block: dict | None = None
    error: str | None = None


@dataclass(frozen=True)
class ZmqReceived:
    event: ZmqEvent


@dataclass(frozen=True)
class ZmqStatus:
    connected: bool
    message: str = ""


Event = (
    KeyInput
    | Tick
    | Heartbeat
    | Quit
    | CoreDone
    | SlowDone
    | BlocksDone
    | CallDone
    | WalletsLoaded
    | SearchDone
    | BlockLoaded
    | ZmqReceived
    | ZmqStatus
)


# --- effects ---------------------------------------------------------------


@dataclass(frozen=True)
class PollCore:
    poll_class = "core"


@dataclass(frozen=True)
class PollSlow:
    poll_class = "slow"


@dataclass(frozen=True)
class PollBlocks:
    tip: int
    known: tuple[BlockStats, ...] = ()

    poll_class = "blocks"


@dataclass(frozen=True)
class RunCall:
    panel: str
    request_id: int
    request: CallRequest


@dataclass(frozen=True)
class LoadWallets:
    pass


@dataclass(frozen=True)
class SearchTx:
    request_id: int
    txid: str


@dataclass(frozen=True)
class LoadBlock:
    request_id: int
    block_hash: str


@dataclass(frozen=True)
class Exit:
    pass


Effect = PollCore | PollSlow | PollBlocks | RunCall | LoadWallets | SearchTx | LoadBlock | Exit

POLL_EFFECTS = (PollCore, PollSlow, PollBlocks)


def describe(obj: Any) -> str:
    """Short name for debug logs; never includes call arguments."""
    name = type(obj).__name__
    if isinstance(obj, KeyInput):
        return f"{name}({'char' if obj.printable else obj.key})"
    if isinstance(obj, RunCall):
        return f"{name}({obj.request.method.name})"
    return name
