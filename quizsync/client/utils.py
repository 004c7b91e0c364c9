import ipaddress
import logging
import re
from urllib.parse import urlsplit

from quizsync.config import MAX_NAME_LENGTH

logger = logging.getLogger("quizsync.client")

_HOST_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)


def _is_valid_hostname(name: str) -> bool:
    if not name:
        return False
    if name.endswith("."):
        name = name[:-1]
    if len(name) > 253:
        return False
    parts = name.split(".")
    for label in parts:
        if not (1 <= len(label) <= 63) or not _HOST_LABEL_RE.match(label):
            return False
    # avoid all-numeric TLDs (helps catch IP-like strings)
    if parts[-1].isdigit():
        return False
    return True


def verify_address(host: str) -> tuple[bool, str]:
    """Validate an IPv4/IPv6 literal or a hostname."""
    if not host:
        return False, "Server host is required."

    h = host.strip()
    if h.startswith("[") and h.endswith("]"):
        h = h[1:-1]

    try:
        ipaddress.ip_address(h)
        return True, ""
    except ValueError:
        pass

    if h.lower() == "localhost":
        return True, ""

    try:
        puny = h.encode("idna").decode("ascii")
    except UnicodeError:
        return False, "Domain contains invalid characters."

    if not _is_valid_hostname(puny):
        return False, "Server host must be a valid IPv4/IPv6 address or domain name."
    return True, ""


def validate_port(value) -> tuple[bool, str, int]:
    try:
        port = int(str(value).strip())
    except ValueError:
        return False, "Port must be a valid integer.", 0
    if not (1 <= port <= 65535):
        return False, "Port must be 1-65535.", 0
    return True, "", port


def build_server_url(host: str, port) -> tuple[bool, str]:
    """Returns (ok, url_or_error_message)."""
    ok, msg = verify_address(host)
    if not ok:
        return False, msg
    ok, msg, port = validate_port(port)
    if not ok:
        return False, msg
    h = host.strip()
    if ":" in h and not h.startswith("["):
        h = f"[{h}]"
    return True, f"ws://{h}:{port}"


def check_server_url(url: str) -> tuple[bool, str]:
    """Validate a ws:// or wss:// store URL. Returns (ok, error_message)."""
    parts = urlsplit(url)
    if parts.scheme not in ("ws", "wss"):
        return False, "Server URL must start with ws:// or wss://."
    ok, msg = verify_address(parts.hostname or "")
    if not ok:
        return False, msg
    try:
        port = parts.port
    except ValueError:
        return False, "Port must be 1-65535."
    if port is not None:
        ok, msg, _ = validate_port(port)
        if not ok:
            return False, msg
    return True, ""


def normalize_server_arg(value: str) -> tuple[bool, str]:
    """Accept ``host:port`` or a full URL. Returns (ok, url_or_error_message)."""
    value = (value or "").strip().rstrip("/")
    if "://" not in value:
        host, sep, port = value.rpartition(":")
        if not sep or not host:
            return False, "Give the server as host:port or ws://host:port."
        return build_server_url(host, port)
    ok, msg = check_server_url(value)
    return (True, value) if ok else (False, msg)


def clean_name(name: str) -> tuple[bool, str]:
    """Normalize a display name. Returns (ok, name_or_error_message)."""
    un = (name or "").strip()
    if not un:
        return False, "Name cannot be empty."
    if "\\" in un or "/" in un:
        un = un.replace("\\", "_").replace("/", "_")
    return True, un[:MAX_NAME_LENGTH]


def generate_option_labels(count: int) -> list[str]:
    """Generate ['A', 'B', 'C'...] for a given number of options."""
    return [chr(65 + i) for i in range(count)]


def format_remaining(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"
