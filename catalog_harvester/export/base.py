"""Interfaces for downstream export collaborators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from catalog_harvester.normalize.assembler import ScrapedMenu


class ExportError(Exception):
    """Export could not be completed."""
    def __init__(self, destination: Optional[str], reason: str):
        self.destination = destination
        self.reason = reason
        super().__init__(f"Export to {destination or 'default destination'} failed: {reason}")


@dataclass
class ExportResult:
    """Where an export landed."""
    location: str
    categories: int
    items: int
    modifier_groups: int


class CredentialProvider(ABC):
    """Supplies short-lived access tokens to export writers."""

    @abstractmethod
    async def get_access_token(self) -> Optional[str]:
        """Return a token, or None when the destination needs none."""


class NoCredentials(CredentialProvider):
    async def get_access_token(self) -> Optional[str]:
        return None


class ExportWriter(ABC):
    """Consumes an assembled catalog and writes it somewhere."""

    def __init__(self, credentials: Optional[CredentialProvider] = None):
        self.credentials = credentials or NoCredentials()

    @abstractmethod
    async def write(self, scraped: ScrapedMenu, destination: Optional[str] = None) -> ExportResult:
        """Write ``scraped`` to ``destination`` (writer-specific identifier)."""
