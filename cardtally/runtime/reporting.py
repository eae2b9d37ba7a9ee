# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Result sinks for final per-color counts.

Reporting is best effort: a failed delivery is logged and dropped. The
in-memory counts are never rolled back, and nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

# Query field carrying each color's count
DEFAULT_FIELDS: dict[str, str] = {
    "pink": "v",
    "green": "u",
    "yellow": "o",
}


class ResultSink(Protocol):
    """Receiver of final counts."""

    def send(self, counts: Mapping[str, int]) -> bool:
        """Deliver counts; return True on success."""
        ...


class HttpResultSink:
    """
    Report counts with one HTTP GET.

    Produces ``<url>?f=command_vc&v=<pink>&u=<green>&o=<yellow>`` with the
    default field mapping. Colors missing from ``counts`` are sent as 0.

    Args:
        url: Endpoint
        fields: Color -> query parameter name
        command: Value of the ``f`` parameter (None to omit it)
        timeout: Request timeout in seconds
        session: requests session to reuse (a new one by default)
    """

    def __init__(
        self,
        url: str,
        *,
        fields: Optional[Mapping[str, str]] = None,
        command: Optional[str] = "command_vc",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.fields = dict(DEFAULT_FIELDS if fields is None else fields)
        self.command = command
        self.timeout = timeout
        self._http = session if session is not None else requests.Session()

    def params(self, counts: Mapping[str, int]) -> dict[str, str]:
        params = {}
        if self.command is not None:
            params["f"] = self.command
        for color, field in self.fields.items():
            params[field] = str(int(counts.get(color, 0)))
        return params

    def send(self, counts: Mapping[str, int]) -> bool:
        try:
            response = self._http.get(self.url, params=self.params(counts), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"HTTP error reporting counts to {self.url}: {e}")
            return False
        logger.debug(f"Reported counts {dict(counts)} to {self.url}")
        return True
