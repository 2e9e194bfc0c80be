"""Page sections that fail on their own.

A page is a handful of independent upstream reads.  Each is loaded
concurrently; one that fails comes back as ``{"data": null, "error":
"..."}`` so the rest of the page still renders.  An expired upstream
session is the exception: it fails the whole page so the user is sent
back to /login.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from portal.api.errors import GENERIC_ERROR
from portal.clients.errors import ApiError, SessionExpiredError

logger = logging.getLogger(__name__)


async def load_section(name: str, loader: Awaitable[Any]) -> dict:
    try:
        return {"data": await loader, "error": None}
    except SessionExpiredError:
        raise
    except ApiError as e:
        logger.warning("Page section %s failed: %s", name, e)
        return {"data": None, "error": GENERIC_ERROR}


async def load_sections(loaders: dict[str, Awaitable[Any]]) -> dict[str, dict]:
    results = await asyncio.gather(
        *(load_section(name, loader) for name, loader in loaders.items())
    )
    return dict(zip(loaders, results))
