import pytest

from kamacache.utils import valid_peer_addr


@pytest.mark.parametrize(
    "addr, expected",
    [
        ("localhost:8001", True),
        ("127.0.0.1:8001", True),
        ("10.0.0.5:2379", True),
        (":8001", False),
        ("127.0.0.1", False),
        ("localhost", False),
        ("a:b:c", False),
        ("example.com:80", False),
        ("1.2.3:80", False),
    ],
)
def test_valid_peer_addr(addr, expected):
    assert valid_peer_addr(addr) is expected