"""Processor registry — maps a transaction type to the processor that runs it.

Processors are supplied at construction time (directly, or as import paths
from configuration).  The manager never discovers them on its own.
"""

from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tx_manager.errors.definitions import ErrUnknownTransactionType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator, Mapping

logger = logging.getLogger(__name__)


@runtime_checkable
class Processor(Protocol):
    """Executes one transaction payload against a blockchain network.

    Raise ``RecoverableProcessorError`` for transient failures and
    ``FatalProcessorError`` for failures no retry can fix.
    """

    async def execute(self, payload: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class ProcessorResult:
    """Success flag plus result, for processors that report rather than raise."""

    success: bool
    result: Any = None
    error: str | None = None


class CallableProcessor:
    """Adapt a coroutine function ``fn(payload) -> result`` to ``Processor``."""

    def __init__(self, fn: Callable[[dict[str, Any]], Awaitable[Any]], *, name: str = "") -> None:
        if not inspect.iscoroutinefunction(fn):
            msg = f"{fn!r} is not a coroutine function"
            raise TypeError(msg)
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "processor")

    async def execute(self, payload: dict[str, Any]) -> Any:
        return await self._fn(payload)

    def __repr__(self) -> str:
        return f"CallableProcessor({self.name})"


def _as_processor(obj: Any) -> Processor:
    if isinstance(obj, Processor):
        return obj
    if inspect.iscoroutinefunction(obj):
        return CallableProcessor(obj)
    msg = f"{obj!r} is neither a Processor nor a coroutine function"
    raise TypeError(msg)


class ProcessorRegistry:
    """Transaction type → processor."""

    def __init__(self, processors: Mapping[str, Any] | None = None) -> None:
        self._processors: dict[str, Processor] = {}
        for tx_type, processor in (processors or {}).items():
            self.register(tx_type, processor)

    @classmethod
    def from_import_paths(cls, paths: Mapping[str, str]) -> ProcessorRegistry:
        """Build a registry from ``{"type": "package.module:attribute"}``.

        A class attribute is instantiated without arguments; an instance or a
        coroutine function is used as is.
        """
        processors: dict[str, Any] = {}
        for tx_type, path in paths.items():
            module_name, _, attr = path.partition(":")
            if not module_name or not attr:
                msg = f"processor path for {tx_type!r} must look like 'module:attribute'"
                raise ValueError(msg)
            target = getattr(importlib.import_module(module_name), attr)
            processors[tx_type] = target() if inspect.isclass(target) else target
            logger.info("Loaded processor %s for %r", path, tx_type)
        return cls(processors)

    def __contains__(self, tx_type: object) -> bool:
        return tx_type in self._processors

    def __iter__(self) -> Iterator[str]:
        return iter(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    @property
    def types(self) -> list[str]:
        return sorted(self._processors)

    def register(self, tx_type: str, processor: Any) -> None:
        if not tx_type:
            msg = "transaction type must be a non-empty string"
            raise ValueError(msg)
        self._processors[tx_type] = _as_processor(processor)

    def get(self, tx_type: str) -> Processor:
        """Return the processor for *tx_type*.

        Raises:
            TxManagerError: ``ErrUnknownTransactionType`` if none is registered.
        """
        try:
            return self._processors[tx_type]
        except KeyError:
            raise ErrUnknownTransactionType.with_detail(repr(tx_type)) from None
