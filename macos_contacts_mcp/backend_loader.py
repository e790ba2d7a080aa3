"""
Lazy loading of the native Contacts backend.

The Contacts framework is a compiled native dependency that can fail to
load on its own (missing wheel, wrong architecture, non-macOS host).
Loading it at import time would take the whole server down before the
MCP handshake, so it is deferred to the first tool call that needs it
and a failure is reported as an ordinary tool error.

States:
    unloaded   - _load_task is None
    loading    - _load_task is pending; concurrent callers await it
    loaded     - _load_task holds the backend
A failed load returns to "unloaded", so the next call tries again.
"""

import asyncio
import logging
from typing import Callable, Optional

from macos_contacts_mcp.contacts_store import ContactsBackend
from macos_contacts_mcp.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

INSTALL_HINT = (
    "The Contacts framework bindings are missing or were built for a "
    "different Python or architecture. On macOS run: "
    "pip install --force-reinstall pyobjc-framework-Contacts"
)


class BackendLoader:
    """
    Load-once, single-flight holder for a ContactsBackend.

    Args:
        factory: Zero-argument callable creating the backend. It runs on a
            worker thread so a slow framework import does not stall the
            event loop.
    """

    def __init__(self, factory: Callable[[], ContactsBackend]):
        self._factory = factory
        self._load_task: Optional[asyncio.Task] = None

    async def load(self) -> ContactsBackend:
        """
        Return the backend, loading it on first use.

        Raises:
            BackendUnavailableError: If the backend failed to load
        """
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())

        # A cancelled caller must not cancel the load other callers share
        return await asyncio.shield(self._load_task)

    async def _load(self) -> ContactsBackend:
        try:
            backend = await asyncio.to_thread(self._factory)
        except Exception as e:
            # Reset so a later call can retry (e.g. after reinstalling pyobjc)
            self._load_task = None
            msg = f"Failed to load the macOS Contacts backend. {INSTALL_HINT}. Error: {e}"
            logger.error(msg)
            raise BackendUnavailableError(msg) from e

        logger.info(f"Contacts backend loaded: {type(backend).__name__}")
        return backend
