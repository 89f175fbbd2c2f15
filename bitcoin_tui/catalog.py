import json
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

METHODS_FILE = Path(__file__).parent / "data" / "methods.json"


class Category(Enum):
    GENERAL = "general"
    WALLET = "wallet"


@dataclass(frozen=True)
class ParamSpec:
    name: str
    type_hint: str
    required: bool
    default: str | None = None
    description: str = ""

    @property
    def optional(self) -> bool:
        return not self.required


@dataclass(frozen=True)
class MethodDescriptor:
    name: str
    category: Category
    summary: str
    params: tuple[ParamSpec, ...] = ()

    @property
    def is_wallet(self) -> bool:
        return self.category is Category.WALLET

    def signature(self) -> str:
        """One-line usage, e.g. ``getblock blockhash [verbosity=1]``."""
        parts = [self.name]
        for param in self.params:
            if param.required:
                parts.append(param.name)
            elif param.default is not None:
                parts.append(f"[{param.name}={param.default}]")
            else:
                parts.append(f"[{param.name}]")
        return " ".join(parts)


def _parse_entry(entry: dict) -> MethodDescriptor:
    params = tuple(
        ParamSpec(
            name=p["name"],
            type_hint=p.get("type", "any"),
            required=bool(p.get("required", False)),
            default=p.get("default"),
            description=p.get("description", ""),
        )
        for p in entry.get("params", [])
    )
    return MethodDescriptor(
        name=entry["name"],
        category=Category(entry.get("category", "general")),
        summary=entry.get("summary", ""),
        params=params,
    )


@lru_cache(maxsize=None)
def methods() -> tuple[MethodDescriptor, ...]:
    """Every invocable method, sorted by name. Loaded once."""
    data = json.loads(METHODS_FILE.read_text(encoding="utf-8"))
    loaded = sorted((_parse_entry(e) for e in data["methods"]), key=lambda m: m.name)
    logger.debug("loaded %d methods from %s", len(loaded), METHODS_FILE.name)
    return tuple(loaded)


def general_methods() -> tuple[MethodDescriptor, ...]:
    return tuple(m for m in methods() if m.category is Category.GENERAL)


def wallet_methods() -> tuple[MethodDescriptor, ...]:
    return tuple(m for m in methods() if m.category is Category.WALLET)


def find(name: str) -> MethodDescriptor | None:
    for method in methods():
        if method.name == name:
            return method
    return None
