"""
Byte-range fetcher: one index record in, one payload in the store out.

Steps, each with its own failure code:
    1. declared digest already stored       -> ALREADY_IN_REPOSITORY
    2. archive URL unusable                 -> BAD_URL
    3. GET with Range header                -> FETCHED_IO_EXCEPTION
    4. status not 200/206                   -> FETCHED_NOT_200
    5. container parse + payload copy       -> FETCHED_IO_EXCEPTION_READING_ENTITY
    6. SHA-1 of the copied payload          -> FETCHED_IO_EXCEPTION_DIGEST
    7. computed digest already stored       -> ALREADY_IN_REPOSITORY
    8. atomic move into the store           -> FETCHED_EXCEPTION_COPYING_TO_REPOSITORY
                                            else ADDED_TO_REPOSITORY
"""

from typing import Dict, Optional
from urllib.parse import urlparse

import requests
from requests.exceptions import InvalidSchema, InvalidURL, MissingSchema, RequestException
from urllib3.exceptions import HTTPError as TransportError

from common.config import config
from common.errors import ContainerReadError, StoreError
from common.logging.logger import get_logger
from common.models import IndexRecord
from fetcher.outcomes import FetchOutcome, FetchStatus
from fetcher.warc_reader import ContainerRecord, read_container
from storage.content_store import ContentStore, compute_digest

logger = get_logger("http_fetcher")

OK_STATUSES = (200, 206)


def build_proxies(proxy_host: Optional[str], proxy_port: Optional[int]) -> Optional[Dict[str, str]]:
    if not proxy_host or proxy_port is None or int(proxy_port) < 0:
        return None
    proxy = f"http://{proxy_host}:{int(proxy_port)}"
    return {"http": proxy, "https": proxy}


class RangeFetcher:
    """
    Fetches index records from the public archive with HTTP byte ranges.

    Not shared between threads: each worker builds its own fetcher and
    requests.Session. The ContentStore may be shared.
    """

    def __init__(
        self,
        store: ContentStore,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        proxy_host: Optional[str] = None,
        proxy_port: Optional[int] = None,
        connect_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ):
        if store is None:
            raise ValueError("store is required")
        self.store = store
        self.base_url = base_url or config.get("fetch.base_url")
        self.proxies = build_proxies(
            proxy_host or config.get("fetch.proxy_host"),
            proxy_port if proxy_port is not None else config.get("fetch.proxy_port"),
        )
        self.timeout = (
            connect_timeout or config.get("fetch.connect_timeout"),
            read_timeout or config.get("fetch.read_timeout"),
        )
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = config.get("fetch.user_agent")
        self.session = session

    def url_for(self, record: IndexRecord) -> Optional[str]:
        """Archive file URL for a record, or None when it cannot be built."""
        if not record.filename:
            return None
        url = self.base_url.rstrip("/") + "/" + record.filename.lstrip("/")
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        if any(c.isspace() for c in url):
            return None
        return url

    def fetch(self, record: IndexRecord) -> FetchOutcome:
        if self.store.contains(record.digest):
            logger.info(f"already retrieved: {record.digest}")
            return self._outcome(record, FetchStatus.ALREADY_IN_REPOSITORY)

        url = self.url_for(record)
        if url is None:
            logger.warning(f"Bad url for filename {record.filename!r}")
            return self._outcome(record, FetchStatus.BAD_URL)

        try:
            response = self.session.get(
                url,
                headers={"Range": record.range_header()},
                proxies=self.proxies,
                timeout=self.timeout,
                stream=True,
                allow_redirects=True,
            )
        except (InvalidURL, MissingSchema, InvalidSchema) as e:
            logger.warning(f"Bad url {url}: {e}")
            return self._outcome(record, FetchStatus.BAD_URL, detail=str(e))
        except RequestException as e:
            logger.warning(f"IO error for {url}: {e}")
            return self._outcome(record, FetchStatus.FETCHED_IO_EXCEPTION, detail=str(e))

        with response:
            if response.url and response.url != url:
                logger.info(f"{url} redirected to {response.url}")
            if response.status_code not in OK_STATUSES:
                logger.warning(f"Bad status for {url}: {response.status_code}")
                return self._outcome(
                    record, FetchStatus.FETCHED_NOT_200, detail=str(response.status_code)
                )
            return self._store_payload(record, response)

    def _store_payload(self, record: IndexRecord, response) -> FetchOutcome:
        container: Optional[ContainerRecord] = None
        with self.store.temp_file() as tmp:
            try:
                with open(tmp, "wb") as out:
                    container = read_container(response.raw)
                    container.copy_payload(out)
            except (ContainerReadError, OSError, RequestException, TransportError) as e:
                logger.warning(f"Could not read entity for {record.url}: {e}")
                return self._outcome(
                    record, FetchStatus.FETCHED_IO_EXCEPTION_READING_ENTITY,
                    container=container, detail=str(e),
                )

            try:
                digest, length = compute_digest(tmp)
            except OSError as e:
                logger.warning(f"IO error while digesting {tmp}: {e}")
                return self._outcome(
                    record, FetchStatus.FETCHED_IO_EXCEPTION_DIGEST,
                    container=container, detail=str(e),
                )

            if container.declared_digest and container.declared_digest != digest:
                logger.warning(
                    f"Digest mismatch for {record.url}: declared {container.declared_digest}, computed {digest}"
                )

            if self.store.contains(digest):
                return self._outcome(
                    record, FetchStatus.ALREADY_IN_REPOSITORY,
                    container=container, computed_digest=digest, actual_length=length,
                )

            try:
                self.store.commit(tmp, digest)
            except StoreError as e:
                logger.error(f"Could not copy {digest} to repository: {e}")
                return self._outcome(
                    record, FetchStatus.FETCHED_EXCEPTION_COPYING_TO_REPOSITORY,
                    container=container, computed_digest=digest, actual_length=length,
                    detail=str(e),
                )

        return self._outcome(
            record, FetchStatus.ADDED_TO_REPOSITORY,
            container=container, computed_digest=digest, actual_length=length,
        )

    @staticmethod
    def _outcome(
        record: IndexRecord,
        status: FetchStatus,
        container: Optional[ContainerRecord] = None,
        computed_digest: str = "",
        actual_length: int = -1,
        detail: Optional[str] = None,
    ) -> FetchOutcome:
        outcome = FetchOutcome(
            url=record.url,
            status=status,
            mime=record.mime,
            mime_detected=record.mime_detected,
            languages=record.languages,
            charset=record.charset,
            declared_digest=record.digest,
            computed_digest=computed_digest,
            actual_length=actual_length,
            detail=detail,
        )
        if container is not None:
            outcome.header_encoding = container.header("content-encoding")
            outcome.header_type = container.header("content-type")
            outcome.header_language = container.header("content-language")
            outcome.header_length = container.header("content-length")
            outcome.truncated = container.truncated
        return outcome
