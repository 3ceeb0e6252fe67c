from __future__ import annotations

import logging
from collections.abc import Iterable, MutableMapping

from toolstream.capability import ToolCapability

logger = logging.getLogger(__name__)


class ToolRegistry:
    """All known tools plus the user's enable/disable choices.

    A registry is not consulted during a stream.  Callers ask it for
    :meth:`enabled_tools` and hand that list to a session, so each
    session sees a fixed capability set.

    Args:
        capabilities: Every tool the application offers.
        settings: Where enabled flags are persisted, keyed
            ``tool.enabled.<name>``. Defaults to a private dict.
    """

    def __init__(
        self,
        capabilities: Iterable[ToolCapability] = (),
        settings: MutableMapping[str, bool] | None = None,
    ):
        self._capabilities: dict[str, ToolCapability] = {}
        self._settings = settings if settings is not None else {}
        for capability in capabilities:
            self.register(capability)

    @staticmethod
    def _key(name: str) -> str:
        return f"tool.enabled.{name}"

    def register(self, capability: ToolCapability) -> None:
        if capability.name in self._capabilities:
            raise ValueError(f"Duplicate tool name: {capability.name}")
        self._capabilities[capability.name] = capability

    def get(self, name: str) -> ToolCapability | None:
        return self._capabilities.get(name)

    @property
    def all_tools(self) -> list[ToolCapability]:
        return list(self._capabilities.values())

    def is_enabled(self, capability: ToolCapability | str) -> bool:
        name = capability if isinstance(capability, str) else capability.name
        stored = self._settings.get(self._key(name))
        if stored is None:
            registered = self._capabilities.get(name)
            return registered.default_enabled if registered else False
        return bool(stored)

    def set_enabled(self, enabled: bool, capability: ToolCapability | str) -> None:
        name = capability if isinstance(capability, str) else capability.name
        self._settings[self._key(name)] = enabled
        logger.debug("Tool %s %s", name, "enabled" if enabled else "disabled")

    def enabled_tools(self, agent_id: str | None = None) -> list[ToolCapability]:
        """Enabled tools, with agent-scoped ones bound to *agent_id*."""
        return [
            capability.bind(agent_id)
            for capability in self._capabilities.values()
            if self.is_enabled(capability)
        ]
