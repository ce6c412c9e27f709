from io import BytesIO
import base64
import ipaddress
import logging
import socket

import qrcode

from lanshare.errors import GenerationError

logger = logging.getLogger("lanshare.discovery")

FALLBACK_HOST = "localhost"
# Any routable address works; connecting a UDP socket sends no packets.
_PROBE_ADDRESS = ("10.255.255.255", 1)


def _is_lan_ipv4(candidate: str) -> bool:
    try:
        address = ipaddress.IPv4Address(candidate)
    except ValueError:
        return False
    return not (address.is_loopback or address.is_link_local or address.is_unspecified)


def _probe_route_address() -> str | None:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(_PROBE_ADDRESS)
            return sock.getsockname()[0]
    except OSError as exc:
        logger.debug("Route probe failed: %s", exc)
        return None


def _hostname_addresses() -> list[str]:
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
        return addresses
    except OSError as exc:
        logger.debug("Hostname lookup failed: %s", exc)
        return []


def resolve_lan_address() -> str:
    """Best guess at the IPv4 address other devices on the LAN can reach."""
    candidates = [_probe_route_address(), *_hostname_addresses()]
    for candidate in candidates:
        if candidate and _is_lan_ipv4(candidate):
            return candidate
    logger.warning("No LAN IPv4 address found, falling back to %s", FALLBACK_HOST)
    return FALLBACK_HOST


def build_access_url(port: int, host: str | None = None, public_url: str | None = None) -> str:
    if public_url:
        return public_url.rstrip("/")
    return f"http://{host or resolve_lan_address()}:{port}"


def render_qr_data_url(url: str) -> str:
    """Render ``url`` as a PNG QR code wrapped in a data URL."""
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=8,
            border=4,
        )
        qr.add_data(url)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buffered = BytesIO()
        img.save(buffered, format="PNG")
    except Exception as exc:
        logger.exception("QR code generation failed for %s", url)
        raise GenerationError(str(exc)) from exc
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode("ascii")
