"""
Collection hooks and the failure reporter.

Each collection may register at most one callback per lifecycle point.
Callbacks receive ``(payload, context)`` and may be plain functions or
coroutines. A callback's return value replaces the payload only when it has
the expected shape; anything else leaves the payload as it was.

The failure reporter is the single exit path for failed data operations:
it hands the root cause to the collection's ``on_failure`` hook and raises
OperationFailedError chained from that cause.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any, NoReturn, TypeVar, Union

from ..core.types import FailureRecord, HookContext
from ..exceptions import ArgumentError, DefinitionError, OperationFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HookResult = Union[T, Awaitable[T]]
ItemHook = Callable[[dict[str, Any], HookContext], HookResult[dict[str, Any]]]
ItemsHook = Callable[[list[dict[str, Any]], HookContext], HookResult[list[dict[str, Any]]]]
IdHook = Callable[[str, HookContext], HookResult[str]]
IdsHook = Callable[[list[str], HookContext], HookResult[list[str]]]
FailureHook = Callable[[BaseException, HookContext], Any]


@dataclass(frozen=True)
class CollectionHooks:
    """Typed callback registry for one collection."""

    before_get_item: IdHook | None = None
    after_get_item: ItemHook | None = None
    before_insert: ItemHook | None = None
    after_insert: ItemHook | None = None
    before_bulk_insert: ItemsHook | None = None
    after_bulk_insert: ItemsHook | None = None
    before_update: ItemHook | None = None
    after_update: IdHook | None = None
    before_bulk_update: ItemsHook | None = None
    before_remove: IdHook | None = None
    after_remove: IdHook | None = None
    before_bulk_remove: IdsHook | None = None
    on_failure: FailureHook | None = None

    @classmethod
    def slot_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, hooks: Mapping[str, Any] | None) -> "CollectionHooks":
        """
        Build a registry from a mapping of hook names to callables.

        Accepts snake_case slot names (``before_insert``) and the camelCase
        spelling used in collection definitions (``beforeInsert``).

        Raises:
            DefinitionError: On an unknown hook name or a non-callable value
        """
        if not hooks:
            return cls()

        slots = cls.slot_names()
        resolved: dict[str, Any] = {}
        for name, callback in hooks.items():
            slot = _to_snake_case(name)
            if slot not in slots:
                raise DefinitionError(f"Unknown hook '{name}'", error_paths=[f"hooks.{name}"])
            if callback is not None and not callable(callback):
                raise DefinitionError(
                    f"Hook '{name}' must be callable, got {type(callback).__name__}",
                    error_paths=[f"hooks.{name}"],
                )
            resolved[slot] = callback
        return cls(**resolved)


def _to_snake_case(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name).lstrip("_")


def _has_shape(value: Any, expected: type | tuple[type, ...]) -> bool:
    return isinstance(value, expected) and not isinstance(value, bool)


async def run_hook(
    hook: Callable[[T, HookContext], HookResult[T]] | None,
    payload: T,
    context: HookContext,
    *,
    expected: type | tuple[type, ...],
    element: type | None = None,
    suppress: bool = False,
    revalidate: Callable[[Any], Any] | None = None,
) -> T:
    """
    Run one hook and return the (possibly replaced) payload.

    Args:
        hook: The registered callback, or None
        payload: Value handed to the hook
        context: Hook context for the collection and caller
        expected: Type a replacement must have (dict, list or str)
        element: For list payloads, the type every element must have
        suppress: Skip the callback entirely
        revalidate: Applied to a replacement before it is trusted

    Returns:
        The replacement when it has the expected shape, else ``payload``

    Raises:
        ArgumentError: A list replacement contains an element of the wrong type
        Exception: Whatever the hook itself raises
    """
    if suppress or hook is None:
        return payload

    result = hook(payload, context)
    if inspect.isawaitable(result):
        result = await result

    if not _has_shape(result, expected):
        if result is not None:
            logger.debug(
                f"Ignoring {type(result).__name__} returned by hook "
                f"'{getattr(hook, '__name__', hook)}' on {context['collectionName']}"
            )
        return payload

    if element is not None:
        for value in result:
            if not isinstance(value, element):
                raise ArgumentError(
                    "One or more of the items are not valid. Expected a list of "
                    f"{element.__name__} but one of the items was {type(value).__name__}"
                )

    if revalidate is not None:
        if element is not None:
            return [revalidate(value) for value in result]
        return revalidate(result)
    return result


async def report_failure(
    hook: FailureHook | None,
    data_operation: str,
    context: HookContext,
    error: BaseException,
    suppress_hooks: bool = False,
) -> NoReturn:
    """
    Report a failed data operation and raise.

    Builds the failure record, hands the root cause to ``on_failure`` unless
    hooks are suppressed, then raises OperationFailedError chained from
    ``error``. An exception raised by ``on_failure`` itself is logged and
    discarded.
    """
    record: FailureRecord = {
        "type": f"{data_operation}_error",
        "context": context,
        "error": error,
    }

    if not suppress_hooks and hook is not None:
        try:
            outcome = hook(error, context)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as hook_error:
            logger.warning(
                f"The on_failure hook of the {context['collectionName']} collection raised "
                f"{type(hook_error).__name__}: {hook_error}. Do not raise from on_failure; "
                "the original error is re-raised"
            )

    raise OperationFailedError(
        f"{data_operation} failed on {context['collectionName']}",
        data_operation=data_operation,
        record=dict(record),
    ) from error
