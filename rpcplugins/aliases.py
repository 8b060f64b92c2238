"""A plugin that maps alias service names onto real ones and back."""

from __future__ import annotations

from typing import Any

__all__ = ["ALIAS_APPLIED_KEY", "AliasPlugin"]

ALIAS_APPLIED_KEY = "__aliasAppliedKey"


def _key(service_path: str, service_method: str) -> str:
    return f"{service_path}.{service_method}"


class AliasPlugin:
    """Rewrites aliased requests to their target and restores the alias on the response."""

    def __init__(self) -> None:
        self.aliases: dict[str, tuple[str, str]] = {}
        self.reverse_aliases: dict[str, tuple[str, str]] = {}

    def alias(
        self,
        alias_service_path: str,
        alias_service_method: str,
        service_path: str,
        service_method: str,
    ) -> None:
        """Make ``alias_service_path.alias_service_method`` call ``service_path.service_method``."""
        self.aliases[_key(alias_service_path, alias_service_method)] = (
            service_path,
            service_method,
        )
        self.reverse_aliases[_key(service_path, service_method)] = (
            alias_service_path,
            alias_service_method,
        )

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        """Replace an aliased service path and method with the real ones."""
        target = self.aliases.get(_key(request.service_path, request.service_method))
        if target is None:
            return
        request.service_path, request.service_method = target
        if request.metadata is None:
            request.metadata = {}
        request.metadata[ALIAS_APPLIED_KEY] = "true"

    def pre_write_response(self, ctx: Any, request: Any, response: Any) -> None:
        """Restore the alias on the request and the response."""
        metadata = request.metadata or {}
        if metadata.get(ALIAS_APPLIED_KEY) != "true":
            return
        original = self.reverse_aliases.get(_key(request.service_path, request.service_method))
        if original is None:
            return
        request.service_path, request.service_method = original
        del request.metadata[ALIAS_APPLIED_KEY]
        if response is not None:
            response.service_path, response.service_method = original