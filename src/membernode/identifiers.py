"""DOI minting services used by ``generateIdentifier``.

Backends:
- LocalDoiMinter: mints ``{prefix}/{shortname}.{random}`` names locally
- HttpDoiRegistrationService: asks a remote DOI registry for the next DOI

Neither backend retries: a failed request surfaces immediately as
DoiRegistrationError, which the adapter reports as ServiceFailure.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DOI_SUFFIX_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DOI_SUFFIX_LENGTH = 6
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


class DoiType(StrEnum):
    """Kinds of objects a DOI can be minted for, with their name short form."""

    DATA_PACKAGE = "DATA_PACKAGE"
    DATASET = "DATASET"
    DOWNLOAD = "DOWNLOAD"

    @property
    def shortname(self) -> str:
        return {"DATA_PACKAGE": "dp", "DATASET": "ds", "DOWNLOAD": "dl"}[self.value]


class DoiRegistrationError(Exception):
    """Raised when a DOI cannot be generated."""

    pass


@dataclass(frozen=True)
class DOI:
    """A DOI split into prefix and suffix."""

    prefix: str
    suffix: str

    @property
    def doi_name(self) -> str:
        """The DOI name, e.g. ``10.5072/dp.abc123``."""
        return f"{self.prefix}/{self.suffix}"

    def __str__(self) -> str:
        return self.doi_name

    @classmethod
    def parse(cls, doi_name: str) -> DOI:
        """Parse a DOI name, accepting ``doi:`` and resolver URL forms."""
        value = doi_name.strip()
        for marker in ("https://doi.org/", "http://doi.org/", "doi:"):
            if value.lower().startswith(marker):
                value = value[len(marker) :]
        prefix, sep, suffix = value.partition("/")
        if not sep or not prefix.startswith("10.") or not suffix:
            raise DoiRegistrationError(f"Not a DOI: {doi_name}")
        return cls(prefix=prefix, suffix=suffix)


class DoiRegistrationService(ABC):
    """Generates the next DOI of a given type."""

    @abstractmethod
    def generate(self, doi_type: DoiType) -> DOI:
        """Generate a new, unregistered DOI.

        Raises:
            DoiRegistrationError: If no DOI could be generated.
        """
        ...


class LocalDoiMinter(DoiRegistrationService):
    """Mints DOIs under a fixed prefix with a random suffix."""

    def __init__(self, prefix: str) -> None:
        if not prefix.startswith("10."):
            raise ValueError(f"Invalid DOI prefix: {prefix}")
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def generate(self, doi_type: DoiType) -> DOI:
        random_part = "".join(
            secrets.choice(DOI_SUFFIX_ALPHABET) for _ in range(DOI_SUFFIX_LENGTH)
        )
        return DOI(prefix=self._prefix, suffix=f"{doi_type.shortname}.{random_part}")


class HttpDoiRegistrationService(DoiRegistrationService):
    """DOI generation backed by a remote registry API.

    Issues ``POST {api_url}doi/gen/{type}``; the registry answers with either a
    JSON object (``doiName`` or ``prefix``/``suffix``) or the DOI as plain text.
    """

    def __init__(
        self,
        api_url: str,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the registry client.

        Args:
            api_url: Base URL of the registry API.
            http_client: Optional httpx.Client for dependency injection (testing).
            timeout_seconds: Request timeout when no client is injected.
        """
        self._api_url = api_url if api_url.endswith("/") else f"{api_url}/"
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds

    def generate(self, doi_type: DoiType) -> DOI:
        url = f"{self._api_url}doi/gen/{doi_type.value}"

        client = self._http_client
        should_close = False
        if client is None:
            client = httpx.Client(timeout=self._timeout_seconds)
            should_close = True
        try:
            response = client.post(url, headers={"Accept": "application/json"})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DoiRegistrationError(
                f"DOI registry returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise DoiRegistrationError(f"DOI registry request failed: {exc}") from exc
        finally:
            if should_close:
                client.close()

        doi = self._parse_response(response)
        logger.info("Generated DOI %s via registry", doi)
        return doi

    @staticmethod
    def _parse_response(response: httpx.Response) -> DOI:
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            return DOI.parse(response.text)

        try:
            data: Any = response.json()
        except ValueError as exc:
            raise DoiRegistrationError("DOI registry returned invalid JSON") from exc

        if isinstance(data, str):
            return DOI.parse(data)
        if isinstance(data, dict):
            if data.get("doiName"):
                return DOI.parse(str(data["doiName"]))
            if data.get("prefix") and data.get("suffix"):
                return DOI(prefix=str(data["prefix"]), suffix=str(data["suffix"]))
        raise DoiRegistrationError("DOI registry response carries no DOI")
