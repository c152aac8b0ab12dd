"""Fetching archived payloads into the content store."""

from fetcher.outcomes import FetchOutcome, FetchStatus, OutcomeWriter, RefetchOutcome, RefetchOutcomeWriter
from fetcher.http_fetcher import RangeFetcher
from fetcher.process_fetcher import ProcessFetcher, UrlDigestPair, iter_url_digest_pairs
from fetcher.warc_reader import ContainerRecord, read_container

__all__ = [
    'FetchOutcome', 'FetchStatus', 'OutcomeWriter', 'RefetchOutcome', 'RefetchOutcomeWriter',
    'RangeFetcher', 'ProcessFetcher', 'UrlDigestPair', 'iter_url_digest_pairs',
    'ContainerRecord', 'read_container',
]
