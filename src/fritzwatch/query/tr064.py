"""FRITZ!Box TR-064 host lookup via SOAP over httpx.

Asks the Hosts:1 service of a router or repeater whether a host entry is
currently active. A fresh HTTP session is opened per lookup.
"""

import logging
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

import httpx

from fritzwatch.errors import NotFoundError, OtherProtocolError, QueryTimeoutError
from fritzwatch.query.base import DeviceQuery, Endpoint, is_ip_address, normalize_mac

logger = logging.getLogger(__name__)

HOSTS_SERVICE = "urn:dslforum-org:service:Hosts:1"
HOSTS_CONTROL_URL = "/upnp/control/hosts"

# UPnP error codes the Hosts service answers with for unknown entries.
NO_SUCH_ENTRY = 714  # NoSuchEntryInArray
INVALID_ARRAY_INDEX = 713  # SpecifiedArrayIndexInvalid
_NOT_FOUND_CODES = frozenset({NO_SUCH_ENTRY, INVALID_ARRAY_INDEX})

_ENVELOPE = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body><u:{action} xmlns:u="{service}">{arguments}</u:{action}></s:Body>'
    "</s:Envelope>"
)


def host_entry_action(identity: str) -> tuple[str, str, str]:
    """Return (action, argument name, argument value) for an identity."""
    if is_ip_address(identity):
        return "X_AVM-DE_GetSpecificHostEntryByIP", "NewIPAddress", identity.strip()
    return "GetSpecificHostEntry", "NewMACAddress", normalize_mac(identity)


def build_envelope(action: str, arguments: dict[str, str]) -> str:
    args = "".join(f"<{k}>{escape(v)}</{k}>" for k, v in arguments.items())
    return _ENVELOPE.format(action=action, service=HOSTS_SERVICE, arguments=args)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_text(root: ET.Element, name: str) -> str | None:
    for element in root.iter():
        if _local_name(element.tag) == name:
            return element.text or ""
    return None


def parse_fault(root: ET.Element) -> tuple[int, str] | None:
    """Extract (errorCode, errorDescription) from a SOAP fault, if any."""
    code = _find_text(root, "errorCode")
    if code is None:
        return None
    try:
        value = int(code.strip())
    except ValueError:
        raise OtherProtocolError(f"Unparseable UPnP error code: {code!r}") from None
    return value, (_find_text(root, "errorDescription") or "").strip()


class Tr064Query(DeviceQuery):
    """Looks up host entries through the TR-064 Hosts service."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def _client(self, endpoint: Endpoint) -> httpx.AsyncClient:
        scheme = "https" if endpoint.use_tls else "http"
        auth = None
        if endpoint.password:
            auth = httpx.DigestAuth(endpoint.username or "", endpoint.password)
        return httpx.AsyncClient(
            base_url=f"{scheme}://{endpoint.host}:{endpoint.port}",
            auth=auth,
            # FRITZ!Box devices only ship self-signed certificates.
            verify=False,
            timeout=endpoint.timeout,
            transport=self._transport,
        )

    async def fetch_active(self, endpoint: Endpoint, identity: str) -> bool:
        action, arg_name, arg_value = host_entry_action(identity)
        body = build_envelope(action, {arg_name: arg_value})
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPAction": f"{HOSTS_SERVICE}#{action}",
        }

        try:
            async with self._client(endpoint) as client:
                resp = await client.post(HOSTS_CONTROL_URL, content=body, headers=headers)
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"{endpoint.label} timed out") from e
        except httpx.HTTPError as e:
            raise OtherProtocolError(f"{endpoint.label}: {e}") from e

        if resp.status_code == 401:
            raise OtherProtocolError(f"{endpoint.label}: authentication failed")

        try:
            root = ET.fromstring(resp.content)
        except ET.ParseError as e:
            raise OtherProtocolError(
                f"{endpoint.label}: invalid response (HTTP {resp.status_code})"
            ) from e

        fault = parse_fault(root)
        if fault is not None:
            code, description = fault
            if code in _NOT_FOUND_CODES:
                raise NotFoundError(f"{arg_value} not known to {endpoint.label}")
            raise OtherProtocolError(f"{endpoint.label}: UPnP error {code} {description}".strip())

        if resp.is_error:
            raise OtherProtocolError(f"{endpoint.label}: HTTP {resp.status_code}")

        active = _find_text(root, "NewActive")
        if active is None:
            raise OtherProtocolError(f"{endpoint.label}: response without NewActive")
        logger.debug("%s on %s: NewActive=%s", arg_value, endpoint.label, active)
        return active.strip() == "1"
