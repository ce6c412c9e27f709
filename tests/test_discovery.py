import base64
from unittest.mock import patch

import pytest

from lanshare import discovery
from lanshare.errors import GenerationError


@pytest.mark.parametrize(
    "candidate, expected",
    [
        ("192.168.1.20", True),
        ("10.0.0.5", True),
        ("127.0.0.1", False),
        ("127.0.1.1", False),
        ("169.254.10.1", False),
        ("0.0.0.0", False),
        ("fe80::1", False),
        ("not-an-ip", False),
    ],
)
def test_is_lan_ipv4(candidate, expected):
    assert discovery._is_lan_ipv4(candidate) is expected


def test_resolve_prefers_route_probe():
    with patch("lanshare.discovery._probe_route_address", return_value="192.168.1.20"), \
         patch("lanshare.discovery._hostname_addresses", return_value=["10.0.0.5"]):
        assert discovery.resolve_lan_address() == "192.168.1.20"


def test_resolve_falls_back_to_hostname_addresses():
    with patch("lanshare.discovery._probe_route_address", return_value="127.0.0.1"), \
         patch("lanshare.discovery._hostname_addresses", return_value=["127.0.1.1", "10.0.0.5"]):
        assert discovery.resolve_lan_address() == "10.0.0.5"


def test_resolve_falls_back_to_localhost():
    with patch("lanshare.discovery._probe_route_address", return_value=None), \
         patch("lanshare.discovery._hostname_addresses", return_value=[]):
        assert discovery.resolve_lan_address() == "localhost"


def test_route_probe_swallows_socket_errors():
    with patch("lanshare.discovery.socket.socket", side_effect=OSError("network unreachable")):
        assert discovery._probe_route_address() is None


def test_build_access_url():
    assert discovery.build_access_url(3000, host="192.168.1.20") == "http://192.168.1.20:3000"
    assert discovery.build_access_url(3000, public_url="https://share.example/") == "https://share.example"
    with patch("lanshare.discovery.resolve_lan_address", return_value="10.0.0.5"):
        assert discovery.build_access_url(8080) == "http://10.0.0.5:8080"


def test_render_qr_data_url_produces_png():
    data_url = discovery.render_qr_data_url("http://192.168.1.20:3000")

    prefix = "data:image/png;base64,"
    assert data_url.startswith(prefix)
    assert base64.b64decode(data_url[len(prefix):]).startswith(b"\x89PNG")


def test_render_qr_failure_raises_generation_error():
    with patch("lanshare.discovery.qrcode.QRCode", side_effect=ValueError("bad data")):
        with pytest.raises(GenerationError):
            discovery.render_qr_data_url("http://x")
