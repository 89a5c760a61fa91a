"""
Per-namespace registries consulted when a change batch is accepted.

PreExecutionHookRegistry: at most one hook per namespace that may amend the
values right before they are committed.

DefaultExportRegistry: export ids that are requested together with every
commit of a backend session, plus the last responses for them.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from paramstate.change_batch import PreExecutionHook

logger = logging.getLogger(__name__)


class PreExecutionHookRegistry:
    """namespace -> pre-execution hook."""

    def __init__(self):
        self._hooks: Dict[str, PreExecutionHook] = {}

    def register(self, namespace: str, hook: PreExecutionHook) -> None:
        """Register the hook of a namespace, replacing an existing one."""
        if namespace in self._hooks:
            logger.warning(f"A pre-execution hook for namespace {namespace} already exists, overwriting it")
        self._hooks[namespace] = hook

    def deregister(self, namespace: str, hook: Optional[PreExecutionHook] = None) -> None:
        """Remove the hook of a namespace.

        If hook is given, only remove it if it is the registered one.
        """
        current = self._hooks.get(namespace)
        if current is None:
            return
        if hook is not None and current is not hook:
            logger.debug(f"Not removing pre-execution hook of namespace {namespace}, it was replaced")
            return
        del self._hooks[namespace]

    def get(self, namespace: str) -> Optional[PreExecutionHook]:
        return self._hooks.get(namespace)

    def clear(self) -> None:
        self._hooks.clear()


class DefaultExportRegistry:
    """Default export ids and cached export responses per namespace."""

    def __init__(self):
        self._exports: Dict[str, List[str]] = {}
        self._responses: Dict[str, Dict[str, Any]] = {}

    def register(self, namespace: str, export_ids: Iterable[str]) -> None:
        """Add export ids to the default exports of a namespace (de-duplicated)."""
        current = self._exports.setdefault(namespace, [])
        for export_id in export_ids:
            if export_id not in current:
                current.append(export_id)

    def deregister(self, namespace: str, export_ids: Iterable[str]) -> None:
        """Remove export ids and prune their cached responses."""
        export_ids = set(export_ids)
        if namespace in self._exports:
            self._exports[namespace] = [e for e in self._exports[namespace] if e not in export_ids]
        responses = self._responses.get(namespace)
        if responses:
            for export_id in export_ids:
                responses.pop(export_id, None)

    def get(self, namespace: str) -> List[str]:
        """Default export ids of a namespace, in registration order."""
        return list(self._exports.get(namespace, ()))

    def set_responses(self, namespace: str, responses: Mapping[str, Any]) -> None:
        """Store the export responses of the latest commit."""
        self._responses[namespace] = dict(responses)

    def get_responses(self, namespace: str) -> Dict[str, Any]:
        return dict(self._responses.get(namespace, {}))

    def remove_namespace(self, namespace: str) -> None:
        self._exports.pop(namespace, None)
        self._responses.pop(namespace, None)

    def clear(self) -> None:
        self._exports.clear()
        self._responses.clear()
