"""Hook registry and dispatch for Sia plugins.

Plugins register handlers against a fixed set of hook names. The
HookRegistry keeps them in registration order and the HookDispatcher runs
them, one at a time, in one of two modes:

- fire: lifecycle notification, return values are ignored.
- fold: each handler receives the previous handler's result.

A registry belongs to one build. The orchestrator creates a fresh one per
build, so handlers from a previous build never leak into the next.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import HookExecutionError

logger = logging.getLogger(__name__)


class HookName(str, Enum):
    AFTER_CONFIG_LOAD = "after_config_load"
    BEFORE_BUILD = "before_build"
    AFTER_CONTENT_LOAD = "after_content_load"
    AFTER_TAG_COLLECTIONS = "after_tag_collections"
    BEFORE_SITE_DATA = "before_site_data"
    BEFORE_RENDER = "before_render"
    AFTER_RENDER = "after_render"
    AFTER_BUILD = "after_build"
    BEFORE_CONTENT_PARSE = "before_content_parse"
    BEFORE_MARKDOWN = "before_markdown"
    AFTER_MARKDOWN = "after_markdown"
    AFTER_CONTENT_PARSE = "after_content_parse"


LIFECYCLE_HOOKS = (
    HookName.AFTER_CONFIG_LOAD,
    HookName.BEFORE_BUILD,
    HookName.AFTER_CONTENT_LOAD,
    HookName.AFTER_TAG_COLLECTIONS,
    HookName.BEFORE_SITE_DATA,
    HookName.BEFORE_RENDER,
    HookName.AFTER_RENDER,
    HookName.AFTER_BUILD,
)

CONTENT_HOOKS = (
    HookName.BEFORE_CONTENT_PARSE,
    HookName.BEFORE_MARKDOWN,
    HookName.AFTER_MARKDOWN,
    HookName.AFTER_CONTENT_PARSE,
)

HOOK_NAMES = frozenset(h.value for h in HookName)

Handler = Callable[..., Any]


def _hook_key(hook: HookName | str) -> str:
    return hook.value if isinstance(hook, HookName) else str(hook)


@dataclass(frozen=True)
class HookHandler:
    """A handler together with the plugin that registered it."""

    plugin_name: str
    handler: Handler


class HookRegistry:
    """Ordered mapping of hook name to registered handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[HookHandler]] = {}

    def register(self, hook: HookName | str, plugin_name: str, handler: Handler) -> None:
        """Append a handler for ``hook``.

        Args:
            hook: Hook name.
            plugin_name: Name of the plugin registering the handler.
            handler: Callable, sync or async.

        Raises:
            ValueError: If the hook name is unknown.
            TypeError: If the handler is not callable.
        """
        key = _hook_key(hook)
        if key not in HOOK_NAMES:
            raise ValueError(f"Unknown hook: {key}")
        if not callable(handler):
            raise TypeError(f"Handler for {key} from {plugin_name} is not callable")
        self._handlers.setdefault(key, []).append(HookHandler(plugin_name, handler))

    def handlers(self, hook: HookName | str) -> list[HookHandler]:
        return list(self._handlers.get(_hook_key(hook), ()))

    def has_handlers(self, hook: HookName | str) -> bool:
        return bool(self._handlers.get(_hook_key(hook)))

    def reset(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return sum(len(v) for v in self._handlers.values())

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"HookRegistry({len(self)} handlers)"


async def _call(handler: Handler, *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookDispatcher:
    """Runs registered handlers sequentially.

    Attributes:
        registry: The HookRegistry to read handlers from.
        strict: When True, handler failures are raised instead of only logged.
    """

    def __init__(self, registry: HookRegistry, strict: bool = False):
        self.registry = registry
        self.strict = strict

    async def fire(self, hook: HookName | str, *args: Any) -> None:
        """Invoke every handler for ``hook``, discarding return values.

        A failing handler is logged and the remaining handlers still run. In
        strict mode the first failure is raised once all handlers finished.

        Args:
            hook: Hook name.
            *args: Arguments passed to every handler.

        Raises:
            HookExecutionError: In strict mode, if any handler raised.
        """
        key = _hook_key(hook)
        failures: list[HookExecutionError] = []
        for entry in self.registry.handlers(key):
            try:
                await _call(entry.handler, *args)
            except Exception as exc:
                error = HookExecutionError(key, entry.plugin_name, exc)
                logger.error("%s", error, exc_info=exc)
                failures.append(error)
        if failures and self.strict:
            raise failures[0]

    async def fold(self, hook: HookName | str, value: Any, *args: Any) -> Any:
        """Thread ``value`` through every handler for ``hook``.

        Each handler receives the previous handler's result; a handler
        returning None leaves the value unchanged.

        Args:
            hook: Hook name.
            value: Initial value.
            *args: Extra arguments passed after the value.

        Returns:
            The value produced by the last handler.

        Raises:
            HookExecutionError: In strict mode, as soon as a handler raises.
        """
        key = _hook_key(hook)
        for entry in self.registry.handlers(key):
            try:
                result = await _call(entry.handler, value, *args)
            except Exception as exc:
                error = HookExecutionError(key, entry.plugin_name, exc)
                if self.strict:
                    raise error from exc
                logger.error("%s", error, exc_info=exc)
                continue
            if result is not None:
                value = result
        return value
