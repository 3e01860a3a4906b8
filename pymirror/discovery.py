"""
Discovery client for pymirror (caller side).

Walks a remote exposure catalog page by page and accumulates the
descriptors it finds, ready for proxy generation.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .descriptors import ClassDescriptor, FunctionDescriptor, descriptor_from_element, element_for
from .errors import DecodingError
from .transport import EXPOSE, HttpTransport, MirrorOptions, MirrorTransport

logger = logging.getLogger(__name__)


class DiscoveryResult:
    """The classes and functions found by a discovery session."""

    def __init__(self, classes: Optional[List[ClassDescriptor]] = None,
                 functions: Optional[List[FunctionDescriptor]] = None):
        self.classes: List[ClassDescriptor] = list(classes or [])
        self.functions: List[FunctionDescriptor] = list(functions or [])

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "classes": [element_for(c) for c in self.classes],
            "functions": [element_for(f) for f in self.functions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoveryResult':
        return cls(
            classes=[descriptor_from_element(e) for e in data.get("classes", [])],
            functions=[descriptor_from_element(e) for e in data.get("functions", [])],
        )

    def __repr__(self) -> str:
        return f"<DiscoveryResult classes={len(self.classes)} functions={len(self.functions)}>"


class DiscoveryClient:
    """
    Fetches every page of a remote catalog.

    The accumulators live on the client: running ``discover`` again appends
    the same descriptors a second time instead of deduplicating them.
    """

    def __init__(self, transport: MirrorTransport, options: Optional[MirrorOptions] = None):
        self.transport = transport
        self.options = options or MirrorOptions()
        self.classes_to_generate: List[ClassDescriptor] = []
        self.functions_to_generate: List[FunctionDescriptor] = []
        self.pages_fetched = 0

    async def fetch_page(self, page: int) -> Dict[str, Any]:
        """Request one page and validate its envelope."""
        text = await self.transport.request(EXPOSE, json.dumps({"page": page}))
        self.pages_fetched += 1
        try:
            response = json.loads(text)
        except (TypeError, ValueError) as e:
            raise DecodingError(f"Discovery page {page} is not valid JSON") from e

        if not isinstance(response, dict):
            raise DecodingError(f"Discovery page {page} is empty or malformed")
        if not isinstance(response.get("totalPages"), int) or not isinstance(response.get("elements"), list):
            raise DecodingError(f"Discovery page {page} lacks totalPages or elements")
        return response

    async def discover(self) -> DiscoveryResult:
        """
        Fetch pages 1, 2, ... until the latest ``totalPages`` is passed.

        Raises:
            DecodingError: a page could not be decoded; the session stops there
            TransportError: the transport failed
        """
        page = 1
        while True:
            response = await self.fetch_page(page)
            for element in response["elements"]:
                descriptor = descriptor_from_element(element)
                if isinstance(descriptor, ClassDescriptor):
                    self.classes_to_generate.append(descriptor)
                else:
                    self.functions_to_generate.append(descriptor)

            if self.options.debug:
                logger.debug(f"Discovered page {page} of {response['totalPages']}")

            page += 1
            if page > response["totalPages"]:
                break

        logger.info(f"Discovery finished: {len(self.classes_to_generate)} classes, "
                    f"{len(self.functions_to_generate)} functions")
        return DiscoveryResult(self.classes_to_generate, self.functions_to_generate)


async def discover(server: str, options: Optional[MirrorOptions] = None) -> DiscoveryResult:
    """Run one discovery session against the exposer at ``server``."""
    async with HttpTransport(server, options) as transport:
        return await DiscoveryClient(transport, options).discover()
