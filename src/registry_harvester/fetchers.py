"""HTTP transports and the fallback proxy gateway."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from urllib.parse import quote

from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .cancellation import CancellationToken
from .errors import CollectionCancelled, ConfigError
from .models import PayloadKind

CHUNK_SIZE = 16384
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.6
MIN_PAGE_LENGTH = 100
HTML_MARKERS = ("<!doctype", "<html", "<table")
ACCEPT_HEADERS = {
    PayloadKind.JSON: "application/json",
    PayloadKind.HTML: "text/html,application/xhtml+xml",
    PayloadKind.PAGE: "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}
_META_CHARSET = re.compile(rb"""<meta[^>]+charset=["']?([\w-]+)""", re.IGNORECASE)


def make_retry_session(user_agent: str, *, retries: int = 2) -> Session:
    """Create requests session with retry/backoff defaults.

    Runs that own a cancellation token pass ``retries=0`` and let the gateway
    retry, so a cancel is noticed between attempts.
    """
    session = Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        }
    )
    retry = Retry(
        total=retries,
        backoff_factor=DEFAULT_BACKOFF,
        status_forcelist=sorted(RETRY_STATUSES),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def decode_body(raw: bytes, content_type: str) -> str:
    """Decode a body using the declared charset, then a meta tag, then UTF-8."""
    encoding = None
    if "charset=" in content_type.lower():
        encoding = content_type.lower().split("charset=", maxsplit=1)[1].split(";")[0].strip(" \"'")
    if not encoding:
        match = _META_CHARSET.search(raw[:4096])
        if match:
            encoding = match.group(1).decode("ascii", errors="ignore")
    try:
        return raw.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def read_body(response: Response, token: CancellationToken) -> str:
    """Read a streamed body, aborting between chunks when the token fires."""
    chunks: list[bytes] = []
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        token.raise_if_cancelled()
        if chunk:
            chunks.append(chunk)
    token.raise_if_cancelled()
    return decode_body(b"".join(chunks), response.headers.get("Content-Type", ""))


def is_valid_payload(text: str, kind: PayloadKind) -> bool:
    """Return True when a body has the shape expected for ``kind``."""
    stripped = text.strip()
    if kind is PayloadKind.JSON:
        if len(stripped) < 2 or stripped.startswith("<"):
            return False
        try:
            json.loads(stripped)
        except ValueError:
            return False
        return True
    if kind is PayloadKind.HTML:
        lowered = stripped.lower()
        return any(marker in lowered for marker in HTML_MARKERS)
    return len(stripped) >= MIN_PAGE_LENGTH


class Transport:
    """One strategy for fetching a URL: the URL itself or a relay in front of it."""

    name = "transport"

    def __init__(self, session: Session) -> None:
        self._session = session

    def target_url(self, url: str) -> str:
        raise NotImplementedError

    def get(
        self, url: str, *, accept: str, timeout: float, token: CancellationToken
    ) -> tuple[int, str]:
        """Return (status code, decoded body) for the strategy's request."""
        with self._session.get(
            self.target_url(url), headers={"Accept": accept}, timeout=timeout, stream=True
        ) as response:
            return response.status_code, read_body(response, token)


class DirectTransport(Transport):
    name = "direct"

    def target_url(self, url: str) -> str:
        return url


class RelayTransport(Transport):
    """Relay endpoint that returns the target's body verbatim."""

    def __init__(self, session: Session, template: str) -> None:
        super().__init__(session)
        if "{url}" not in template:
            raise ConfigError(f"Relay template must contain '{{url}}': {template}")
        self._template = template
        self.name = template.split("{url}", maxsplit=1)[0]

    def target_url(self, url: str) -> str:
        return self._template.replace("{url}", quote(url, safe=""))


class ProxyGateway:
    """Tries each transport in order until one returns a usable payload.

    Connection errors and retryable statuses are retried up to ``attempts``
    times per transport; backoff waits on the token.
    """

    def __init__(
        self,
        transports: Sequence[Transport],
        *,
        timeout: float,
        logger: logging.Logger,
        attempts: int = 1,
        backoff: float = DEFAULT_BACKOFF,
    ) -> None:
        if attempts < 1:
            raise ConfigError("attempts must be >= 1.")
        self._transports = tuple(transports)
        self._timeout = timeout
        self._logger = logger
        self._attempts = attempts
        self._backoff = backoff

    @property
    def transports(self) -> tuple[Transport, ...]:
        return self._transports

    def fetch(
        self,
        url: str,
        kind: PayloadKind = PayloadKind.JSON,
        token: CancellationToken | None = None,
    ) -> str | None:
        """Return the first valid payload, or None when every transport failed.

        Raises CollectionCancelled if the token is (or becomes) cancelled; an
        aborted in-flight request is a cancellation, not a transport failure.
        """
        token = token or CancellationToken()
        for transport in self._transports:
            text = self._try_transport(transport, url, kind, token)
            if text is not None:
                self._logger.debug("Transport %s succeeded for %s", transport.name, url)
                return text
        self._logger.warning("All %d transports failed for %s", len(self._transports), url)
        return None

    def _try_transport(
        self, transport: Transport, url: str, kind: PayloadKind, token: CancellationToken
    ) -> str | None:
        for attempt in range(self._attempts):
            if attempt and token.wait(self._backoff * 2 ** (attempt - 1)):
                raise CollectionCancelled("Run cancelled during retry backoff.")
            token.raise_if_cancelled()
            try:
                status, text = transport.get(
                    url, accept=ACCEPT_HEADERS[kind], timeout=self._timeout, token=token
                )
            except CollectionCancelled:
                raise
            except RequestException as exc:
                if token.cancelled:
                    raise CollectionCancelled("Run cancelled during fetch.") from exc
                self._logger.debug(
                    "Transport %s failed for %s (attempt %d): %s", transport.name, url, attempt + 1, exc
                )
                continue
            if status in RETRY_STATUSES:
                self._logger.debug(
                    "Transport %s returned HTTP %d for %s (attempt %d)", transport.name, status, url, attempt + 1
                )
                continue
            if not 200 <= status < 300:
                self._logger.debug("Transport %s returned HTTP %d for %s", transport.name, status, url)
                return None
            if not is_valid_payload(text, kind):
                self._logger.debug(
                    "Transport %s returned an unusable %s payload for %s", transport.name, kind.value, url
                )
                return None
            return text
        return None


def build_gateway(
    *,
    session: Session,
    relays: Sequence[str],
    use_direct: bool,
    timeout: float,
    logger: logging.Logger,
    attempts: int = 1,
) -> ProxyGateway:
    """Build a gateway with the direct fetch first, then relays in order."""
    transports: list[Transport] = []
    if use_direct:
        transports.append(DirectTransport(session))
    transports.extend(RelayTransport(session, template) for template in relays)
    if not transports:
        raise ConfigError("At least one transport is required.")
    return ProxyGateway(transports, timeout=timeout, logger=logger, attempts=attempts)
