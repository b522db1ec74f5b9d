"""
Vulnerability lookup client.

The lookup service is external: given a device address it returns a list of
known findings. An empty list and a failure are different outcomes.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

import config
from utils.logging import get_logger

logger = get_logger('roguewatch.vulnerability')


class VulnerabilityLookupError(Exception):
    """The lookup service was unreachable or returned an unusable answer."""


class VulnerabilityLookup(ABC):

    @abstractmethod
    def lookup(self, address: str) -> list[dict]:
        """
        Return known findings for a device.

        Raises:
            VulnerabilityLookupError: on any failure.
        """


class HttpVulnerabilityLookup(VulnerabilityLookup):
    """Queries ``GET {base_url}/devices/{address}/vulnerabilities``."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def lookup(self, address: str) -> list[dict]:
        url = f"{self.base_url}/devices/{quote(address, safe='')}/vulnerabilities"
        req = Request(url, headers={
            'User-Agent': f'RogueWatch/{config.VERSION}',
            'Accept': 'application/json',
        })

        try:
            with urlopen(req, timeout=self.timeout) as response:
                payload = json.loads(response.read().decode('utf-8'))
        except HTTPError as e:
            raise VulnerabilityLookupError(f"Lookup for {address} failed: {e.code} {e.reason}") from e
        except (URLError, OSError) as e:
            raise VulnerabilityLookupError(f"Lookup for {address} failed: {e}") from e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise VulnerabilityLookupError(f"Lookup for {address} returned invalid JSON") from e

        if isinstance(payload, dict):
            payload = payload.get('findings')
        if not isinstance(payload, list):
            raise VulnerabilityLookupError(f"Lookup for {address} returned no findings list")
        return payload


class UnavailableVulnerabilityLookup(VulnerabilityLookup):
    """Stand-in when no lookup service is configured; every lookup fails."""

    def lookup(self, address: str) -> list[dict]:
        raise VulnerabilityLookupError('No vulnerability lookup service configured')


def create_vulnerability_lookup() -> VulnerabilityLookup:
    if config.VULN_LOOKUP_URL:
        return HttpVulnerabilityLookup(config.VULN_LOOKUP_URL, timeout=config.VULN_LOOKUP_TIMEOUT)
    logger.warning("ROGUEWATCH_VULN_LOOKUP_URL not set; new devices will be classified as potential")
    return UnavailableVulnerabilityLookup()
