"""Base interface for presence lookups against a router or repeater."""

import asyncio
import enum
import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from fritzwatch.backoff import with_timeout
from fritzwatch.errors import NotFoundError, QueryTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """Connection details for one TR-064 capable device."""

    host: str
    port: int = 49000
    username: str | None = None
    password: str | None = None
    timeout: float = 5.0  # seconds
    use_tls: bool = False
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or f"{self.host}:{self.port}"


class OutcomeKind(enum.StrEnum):
    active = "active"
    inactive = "inactive"
    not_found = "not_found"
    timeout = "timeout"
    error = "error"


@dataclass(frozen=True)
class QueryOutcome:
    """Result of a single lookup: Active(bool), NotFound, Timeout or OtherError."""

    kind: OutcomeKind
    detail: str | None = None

    @property
    def present(self) -> bool:
        return self.kind == OutcomeKind.active

    @property
    def succeeded(self) -> bool:
        """True for every outcome where the endpoint actually answered."""
        return self.kind in (OutcomeKind.active, OutcomeKind.inactive, OutcomeKind.not_found)

    @classmethod
    def from_active(cls, active: bool) -> "QueryOutcome":
        return cls(OutcomeKind.active if active else OutcomeKind.inactive)


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to uppercase colon-separated format."""
    cleaned = mac.strip().upper().replace("-", ":").replace(".", "")
    # Handle bare hex (e.g. "AABBCCDDEEFF")
    if ":" not in cleaned and len(cleaned) == 12:
        cleaned = ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))
    return cleaned


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def normalize_address(value: str) -> str:
    """Canonical form of a tracked identity: IPs as given, MACs normalized."""
    value = value.strip()
    if is_ip_address(value):
        return value
    return normalize_mac(value)


class DeviceQuery(ABC):
    """One capability: ask an endpoint whether an identity is active."""

    @abstractmethod
    async def fetch_active(self, endpoint: Endpoint, identity: str) -> bool:
        """Return the host's active flag.

        Raises NotFoundError, QueryTimeoutError or OtherProtocolError.
        """

    async def query_active(self, endpoint: Endpoint, identity: str) -> QueryOutcome:
        """Run one lookup under the endpoint's timeout and classify the result.

        Never raises except for cancellation.
        """
        try:
            active = await with_timeout(
                self.fetch_active(endpoint, identity), endpoint.timeout
            )
        except asyncio.CancelledError:
            raise
        except NotFoundError:
            return QueryOutcome(OutcomeKind.not_found)
        except QueryTimeoutError as e:
            return QueryOutcome(OutcomeKind.timeout, str(e) or None)
        except Exception as e:
            logger.debug("Lookup of %s on %s failed", identity, endpoint.label, exc_info=True)
            return QueryOutcome(OutcomeKind.error, str(e) or type(e).__name__)
        return QueryOutcome.from_active(active)
