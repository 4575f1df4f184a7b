# Overview: Column type capability interface and the registry that resolves type ids to it.

from __future__ import annotations

import importlib
import logging
from typing import Any, Iterable, NamedTuple, Optional

logger = logging.getLogger(__name__)

"""
Column type invariants (authoritative)

- Every column type, built-in or module-provided, implements TypeContract.
- Module types are registered as "<moduleId>:<typeId>".
- An unregistered "<moduleId>:<typeId>" falls back to the built-in <typeId>.
- Anything still unresolved gets the permissive contract (accepts any value).
  Unknown types never fail closed; old tables keep loading when a module is removed.
"""


class CoercionResult(NamedTuple):
    value: Any
    error: Optional[str]

    @property
    def ok(self) -> bool:
        return self.error is None


def is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str) and not raw.strip():
        return True
    return False


class TypeContract:
    """
    Coercion/validation capability for one column type.

    Subclasses implement convert(), raising ValueError with a user-facing
    message when the raw value is not acceptable.
    """

    type_id: str = ""
    description: str = ""
    example: str = ""

    def coerce(self, raw: Any) -> CoercionResult:
        try:
            return CoercionResult(self.convert(raw), None)
        except ValueError as exc:
            return CoercionResult(None, str(exc))

    def convert(self, raw: Any) -> Any:
        raise NotImplementedError

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return None

    def is_blank(self, raw: Any) -> bool:
        return is_blank(raw)

    def to_storage(self, value: Any) -> Any:
        """JSON-compatible form of a coerced value."""
        return value

    def describe(self, key: str | None = None) -> dict:
        return {
            "type": key or self.type_id,
            "description": self.description,
            "example": self.example,
        }


class PermissiveType(TypeContract):
    type_id = "any"
    description = "Unknown type; any value is accepted"

    def convert(self, raw: Any) -> Any:
        return raw


PERMISSIVE = PermissiveType()


class ColumnTypeRegistry:
    def __init__(self):
        self._contracts: dict[str, TypeContract] = {}

    def register(self, contract: TypeContract, *, module_id: str | None = None) -> str:
        if not contract.type_id:
            raise ValueError("TypeContract.type_id is required")
        key = f"{module_id}:{contract.type_id}" if module_id else contract.type_id
        if key in self._contracts:
            raise ValueError(f"Column type {key!r} is already registered")
        self._contracts[key] = contract
        return key

    def lookup(self, type_id: str | None) -> Optional[TypeContract]:
        """Return the registered contract, or None when nothing matches."""
        if not type_id:
            return None
        contract = self._contracts.get(type_id)
        if contract is None and ":" in type_id:
            contract = self._contracts.get(type_id.rsplit(":", 1)[1])
        return contract

    def resolve(self, type_id: str | None) -> TypeContract:
        return self.lookup(type_id) or PERMISSIVE

    def is_known(self, type_id: str | None) -> bool:
        return self.lookup(type_id) is not None

    def type_ids(self) -> list[str]:
        return sorted(self._contracts)

    def describe(self) -> list[dict]:
        return [self._contracts[key].describe(key) for key in self.type_ids()]


def load_plugins(registry: ColumnTypeRegistry, specs: Iterable[str]) -> list[str]:
    """
    Run "module.path:callable" registration hooks.

    Each callable receives the registry and registers its own contracts.
    Import errors propagate: a misconfigured plugin list must stop startup.
    """
    loaded = []
    for spec in specs:
        module_name, _, attr = spec.partition(":")
        if not module_name or not attr:
            raise ValueError(f"Invalid column type plugin {spec!r}; expected 'module:callable'")
        module = importlib.import_module(module_name)
        hook = getattr(module, attr)
        hook(registry)
        loaded.append(spec)
        logger.info("Loaded column type plugin %s", spec)
    return loaded


def build_registry(plugins: Iterable[str] = ()) -> ColumnTypeRegistry:
    from .builtin import BUILTIN_TYPES

    registry = ColumnTypeRegistry()
    for contract in BUILTIN_TYPES:
        registry.register(contract)
    load_plugins(registry, plugins)
    return registry
