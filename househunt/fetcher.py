"""Plain network retrieval for pages that do not need a browser.

ContentFetcher wraps an aiohttp session with:
- manual redirect following with a bounded chain depth
- transparent gzip/deflate/brotli decoding (aiohttp + Brotli)
- host resolution through fixed public resolvers, falling back to the
  system resolver
- an overall deadline that cancels the in-flight request

It is the fallback route for listing pages when the browser flow fails,
and the primitive for any target that serves static markup.
"""

import asyncio
import random
import socket
from typing import Any
from urllib.parse import urljoin

import aiohttp
from aiohttp.abc import AbstractResolver

from config.settings import GlobalConfig, get_config
from househunt.deadline import Deadline
from househunt.exceptions import (
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
    RedirectLoopError,
)
from househunt.logger import get_logger
from househunt.models import FetchResult

log = get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class FallbackResolver(AbstractResolver):
    """Resolve via fixed public nameservers, then the system resolver."""

    def __init__(self, nameservers: list[str]) -> None:
        self.nameservers = nameservers
        self._primary = aiohttp.AsyncResolver(nameservers=nameservers)
        self._fallback = aiohttp.ThreadedResolver()

    async def resolve(
        self, host: str, port: int = 0, family: socket.AddressFamily = socket.AF_INET
    ) -> list[Any]:
        try:
            return await self._primary.resolve(host, port, family)
        except OSError as exc:
            log.debug(
                "Public resolvers failed, using system resolver",
                host=host,
                nameservers=self.nameservers,
                error=str(exc),
            )
            return await self._fallback.resolve(host, port, family)

    async def close(self) -> None:
        await self._primary.close()
        await self._fallback.close()


class ContentFetcher:
    """Fetches and decodes a single document over HTTP(S).

    Attributes:
        config: GlobalConfig instance for timeouts and resolvers.
        max_redirects: Redirect hops followed before RedirectLoopError.

    Example:
        fetcher = ContentFetcher()
        result = await fetcher.fetch("https://www.realestate.com.au/property-house-vic-...")
        print(result.status, len(result.body))
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-AU,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "Cache-Control": "no-cache",
    }

    def __init__(
        self,
        config: GlobalConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            session: Externally owned session; a private one is opened per
                fetch when omitted.
        """
        self.config = config or get_config()
        self.max_redirects = self.config.max_redirects
        self._session = session

    def _build_headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {"User-Agent": random.choice(self.config.user_agents), **self.DEFAULT_HEADERS}
        if extra:
            headers.update(extra)
        return headers

    async def fetch(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        deadline: Deadline | None = None,
    ) -> FetchResult:
        """Retrieve ``url``, following redirects.

        Args:
            url: Absolute http(s) URL.
            headers: Extra request headers merged over the defaults.
            deadline: Overall deadline; defaults to ``fetch_timeout_sec``.

        Returns:
            FetchResult with the decoded body of the final response.

        Raises:
            FetchTimeoutError: If the deadline expires mid-request.
            RedirectLoopError: If more than ``max_redirects`` hops occur.
            HttpStatusError: If the final status is outside 2xx.
            NetworkError: On transport failures.
        """
        if deadline is None:
            deadline = Deadline.after(self.config.fetch_timeout_sec)

        request_headers = self._build_headers(headers)
        log.debug("Fetching URL", url=url, timeout=round(deadline.remaining(), 2))

        try:
            async with deadline.scope("fetch", cap=self.config.fetch_timeout_sec):
                if self._session is not None:
                    return await self._follow(self._session, url, request_headers)

                resolver = FallbackResolver(self.config.dns_nameservers)
                try:
                    connector = aiohttp.TCPConnector(resolver=resolver)
                    async with aiohttp.ClientSession(
                        connector=connector,
                        timeout=aiohttp.ClientTimeout(total=None),
                    ) as session:
                        return await self._follow(session, url, request_headers)
                finally:
                    await resolver.close()
        except FetchTimeoutError:
            log.warning("Fetch timed out", url=url)
            raise

    async def _follow(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: dict[str, str],
    ) -> FetchResult:
        current = url
        for hop in range(self.max_redirects + 1):
            try:
                async with session.get(current, headers=headers, allow_redirects=False) as response:
                    status = response.status
                    location = response.headers.get("Location")

                    if status in REDIRECT_STATUSES and location:
                        next_url = urljoin(current, location)
                        log.debug("Following redirect", status=status, hop=hop + 1, location=next_url)
                        current = next_url
                        continue

                    if not 200 <= status < 300:
                        raise HttpStatusError(url=current, status=status)

                    body = await response.text(errors="replace")
                    result = FetchResult(
                        url=url,
                        final_url=current,
                        status=status,
                        headers={k: v for k, v in response.headers.items()},
                        body=body,
                        redirects=hop,
                    )
            except asyncio.TimeoutError as exc:
                raise FetchTimeoutError(operation="fetch", url=current) from exc
            except aiohttp.ClientError as exc:
                raise NetworkError(url=current, reason=f"{type(exc).__name__}: {exc}") from exc

            log.info(
                "Fetch successful",
                url=url,
                final_url=current,
                status=status,
                redirects=hop,
                bytes=len(body),
            )
            return result

        raise RedirectLoopError(url=url, max_redirects=self.max_redirects)
