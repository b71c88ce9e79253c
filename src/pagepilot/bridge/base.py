"""
Transport abstraction between the agent and the documents of a page.

A page is a set of *origins* (the top document plus any embedded frames), each addressed by an
opaque ``key``.  A bridge can enumerate origins, list the tools an origin exposes and execute one of
them.  The agent never needs to know whether origins are browser frames, tabs or something else.
"""

from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Dict,
    List,
)

from pydantic import BaseModel


class BridgeError(RuntimeError):
    """Raised when an origin cannot be reached or returns a malformed reply."""


class Origin(BaseModel):
    """One addressable document."""

    key: str
    url: str = ""
    is_top_level: bool = False


class OriginListing(BaseModel):
    """Reply to a tool listing: raw tool descriptors plus the document URL."""

    tools: List[Dict[str, Any]]
    url: str = ""


class OriginBridge(ABC):
    """Origin-keyed request/response transport."""

    #: Routing key of the top-level document.
    top_origin_key: str = "0"

    @abstractmethod
    async def list_origins(self) -> List[Origin]:
        """Enumerate every origin of the active page, top document included."""

    @abstractmethod
    async def list_tools(self, origin_key: str) -> OriginListing:
        """Return the tools exposed by *origin_key*; raise :class:`BridgeError` if unreachable."""

    @abstractmethod
    async def execute_tool(self, origin_key: str, name: str, input_args: str) -> Dict[str, Any]:
        """
        Run *name* inside *origin_key* with JSON-encoded *input_args*.

        Returns a mapping shaped ``{"success": bool, "result": Any, "error": str}``.
        """

    async def aclose(self) -> None:
        """Release transport resources."""
