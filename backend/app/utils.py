import itertools
import random
import socket

_player_ids = itertools.count(1)


def generate_pin() -> str:
    return str(random.randint(1000, 9999))


def next_player_id() -> str:
    return str(next(_player_ids))


def local_ip() -> str:
    """Best-effort LAN address for the startup banner."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packets are sent; connecting a UDP socket only picks a route
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]
    except OSError:
        return "localhost"
    finally:
        sock.close()
