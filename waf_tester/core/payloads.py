"""Attack payload pools and request injection."""

import aiofiles
import logging
import random
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import TestConfig

ATTACK_CATEGORIES = ["sql", "xss", "traversal", "command"]

SCANNER = "scanner"
LEGITIMATE = "legitimate"

# Pool name -> file name inside the payloads directory
PAYLOAD_FILES = {
    "sql": "sql-injection.txt",
    "xss": "xss.txt",
    "traversal": "path-traversal.txt",
    "command": "command-injection.txt",
    SCANNER: "scanner-user-agents.txt",
    LEGITIMATE: "legitimate-user-agents.txt",
}

FALLBACK_SCANNER_USER_AGENTS = [
    "sqlmap/1.0",
    "Nikto/2.1.6",
    "nmap-scripting-engine",
]

FALLBACK_LEGITIMATE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

NO_PAYLOADS = "No payloads available"

DEFAULT_PAYLOADS_DIR = Path(__file__).resolve().parent.parent / "payloads"


class PayloadPool:
    """
    In-memory pools of attack payloads and user-agent strings.

    Loaded once at startup and shared read-only by every session. Empty
    pools fall back to built-in values so the tester works without any
    payload files.
    """

    def __init__(
        self,
        pools: Optional[Dict[str, List[str]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.pools: Dict[str, List[str]] = {name: [] for name in PAYLOAD_FILES}
        if pools:
            for name, values in pools.items():
                self.pools[name] = list(values)
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)

    @classmethod
    async def from_directory(cls, payloads_dir=None) -> "PayloadPool":
        """Create a pool and load it from a payloads directory."""
        pool = cls()
        await pool.load(payloads_dir)
        return pool

    async def load(self, payloads_dir=None) -> int:
        """
        Load all payload files from disk.

        Missing or unreadable files are skipped.

        Args:
            payloads_dir: Directory holding the payload files (bundled set if None)

        Returns:
            Total number of payloads loaded
        """
        directory = Path(payloads_dir) if payloads_dir else DEFAULT_PAYLOADS_DIR

        for name, filename in PAYLOAD_FILES.items():
            path = directory / filename
            try:
                async with aiofiles.open(path, "r", encoding="utf-8") as f:
                    content = await f.read()
            except OSError as e:
                self.logger.debug(f"Skipping payload file {path}: {e}")
                continue
            self.pools[name] = parse_payload_lines(content)

        total = len(self)
        if total == 0:
            self.logger.warning(
                f"No payloads loaded from {directory} - "
                "attack mode will have limited functionality"
            )
        else:
            counts = ", ".join(f"{name}={len(v)}" for name, v in self.pools.items())
            self.logger.info(f"Loaded {total} payloads ({counts})")
        return total

    def __len__(self) -> int:
        return sum(len(v) for v in self.pools.values())

    def random_payload(self, category: str) -> str:
        """Return a random payload of a category, or "" if none are loaded."""
        payloads = self.pools.get(category) if category in ATTACK_CATEGORIES else None
        if not payloads:
            return ""
        return self.rng.choice(payloads)

    def random_attack_category(self) -> str:
        return self.rng.choice(ATTACK_CATEGORIES)

    def random_scanner_user_agent(self) -> str:
        agents = self.pools[SCANNER] or FALLBACK_SCANNER_USER_AGENTS
        return self.rng.choice(agents)

    def random_legitimate_user_agent(self) -> str:
        agents = self.pools[LEGITIMATE]
        if not agents:
            return FALLBACK_LEGITIMATE_USER_AGENT
        return self.rng.choice(agents)


def parse_payload_lines(content: str) -> List[str]:
    """Split a payload file into entries, skipping blanks and # comments."""
    payloads = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        payloads.append(line)
    return payloads


def select_user_agent(config: TestConfig, pool: PayloadPool) -> str:
    """Pick the User-Agent: custom string, then explicit type, then traffic default."""
    if config.custom_user_agent:
        return config.custom_user_agent

    if config.user_agent_type == SCANNER:
        return pool.random_scanner_user_agent()
    if config.user_agent_type == LEGITIMATE:
        return pool.random_legitimate_user_agent()

    if config.is_attack:
        return pool.random_scanner_user_agent()
    return pool.random_legitimate_user_agent()


def set_header(headers: Dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing value whatever its casing."""
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
    headers[name] = value


def build_attack_request(
    config: TestConfig, pool: PayloadPool
) -> Tuple[str, str, Dict[str, str], str]:
    """
    Inject a random attack payload into the configured request.

    GET requests get the payload as ``id`` and ``search`` query parameters;
    other methods get it in the JSON body. An existing body is extended by
    replacing its trailing brace, which only works for bodies that end in
    a JSON object.

    Returns:
        Tuple of (url, body, headers, attack_info)
    """
    url = config.target_url
    body = config.request_body
    headers = dict(config.custom_headers)

    category = pool.random_attack_category()
    payload = pool.random_payload(category)

    if not payload:
        return url, body, headers, NO_PAYLOADS

    if config.http_method in ("GET", ""):
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}id={payload}&search={payload}"
        attack_info = f"{category} (query parameter)"
    else:
        if not body:
            body = f'{{"id": "{payload}", "search": "{payload}"}}'
        else:
            if body.endswith("}"):
                body = body[:-1]
            body = f'{body}, "attack": "{payload}"}}'
        attack_info = f"{category} (request body)"

    set_header(headers, "User-Agent", pool.random_scanner_user_agent())
    return url, body, headers, attack_info


def generate_404_url(base_url: str, rng: Optional[random.Random] = None) -> str:
    """Append a path that will not exist on the target."""
    rng = rng or random
    path = f"/nonexistent-path-{int(time.time())}-{rng.randrange(999999)}"
    return base_url.rstrip("/") + path
