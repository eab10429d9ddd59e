"""External metadata sources used to corroborate field values.

Sources are opaque providers that may return field values for a record.
Every failure mode of a provider (timeout, transport error, non-2xx
status, malformed payload) degrades to "no data" in
:class:`CorroborationClient`; nothing here is fatal to a batch.
"""

import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import httpx

from catalogdq.audit.logger import AuditLogger
from catalogdq.models import SOURCE_RELIABILITY, FieldSource, FieldSourceLedger, Record, is_empty
from catalogdq.scoring.confidence import values_agree

__all__ = [
    "ExternalSourceError",
    "MetadataSource",
    "HttpMetadataSource",
    "CorroborationClient",
    "DEFAULT_TIMEOUT",
]

DEFAULT_TIMEOUT = 10.0

DEFAULT_HEADERS = {
    "User-Agent": "catalogdq/0.4 (catalog data-quality batch)",
    "Accept": "application/json",
}


class ExternalSourceError(Exception):
    """Raised when a provider returns no usable data."""

    def __init__(self, source_id: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id
        self.status_code = status_code


@runtime_checkable
class MetadataSource(Protocol):
    """A provider of field values for a record."""

    source_id: str
    reliability: float
    machine_generated: bool

    def fetch(self, record: Record) -> dict[str, Any]:
        """Return provider values keyed by record field name."""
        ...


class HttpMetadataSource:
    """JSON-over-HTTP provider.

    Parameters
    ----------
    source_id : str
        Provider identifier (e.g. ``"tmdb"``).
    url_template : str
        URL formatted with the record's field values and ``id``, e.g.
        ``"https://api.example.org/movie/{tmdb_id}"``.
    reliability : float | None, optional
        Declared reliability; defaults to the provider table, else 0.5.
    field_map : Mapping[str, str] | None, optional
        Provider key to record field mapping. Without it, payload keys that
        match schema fields are used as-is.
    timeout : float, optional
        Request timeout in seconds.
    machine_generated : bool, optional
        Whether the provider's values are machine-generated.
    client : httpx.Client | None, optional
        Preconfigured client (tests pass one with a ``MockTransport``).
    """

    def __init__(
        self,
        source_id: str,
        url_template: str,
        *,
        reliability: float | None = None,
        field_map: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        machine_generated: bool = False,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.source_id = source_id
        self.url_template = url_template
        self.reliability = (
            reliability if reliability is not None else SOURCE_RELIABILITY.get(source_id, 0.5)
        )
        self.field_map = dict(field_map or {})
        self.timeout = timeout
        self.machine_generated = machine_generated
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={**DEFAULT_HEADERS, **(headers or {})},
        )

    def close(self) -> None:
        self._client.close()

    def _url_for(self, record: Record) -> str:
        values = {k: v for k, v in record.fields.items() if not is_empty(v)}
        values["id"] = record.id
        try:
            return self.url_template.format(**values)
        except KeyError as e:
            raise ExternalSourceError(
                self.source_id, f"record {record.id} has no {e.args[0]!r} for the request URL"
            ) from None

    def fetch(self, record: Record) -> dict[str, Any]:
        """GET the provider payload for *record*.

        Raises
        ------
        ExternalSourceError
            On timeout, transport failure, non-2xx status or a payload that
            is not a JSON object.
        """
        url = self._url_for(record)

        try:
            response = self._client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ExternalSourceError(self.source_id, f"timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise ExternalSourceError(self.source_id, f"request failed for {url}: {e}") from e

        if not response.is_success:
            raise ExternalSourceError(
                self.source_id,
                f"HTTP {response.status_code} for {url}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalSourceError(self.source_id, f"malformed JSON from {url}") from e
        if not isinstance(payload, dict):
            raise ExternalSourceError(self.source_id, f"expected a JSON object from {url}")

        return self._map_fields(record, payload)

    def _map_fields(self, record: Record, payload: dict[str, Any]) -> dict[str, Any]:
        schema = record.schema
        if self.field_map:
            pairs = ((target, payload.get(key)) for key, target in self.field_map.items())
        else:
            pairs = ((key, value) for key, value in payload.items() if key in schema)
        return {name: value for name, value in pairs if not is_empty(value)}


class CorroborationClient:
    """Queries sources sequentially and records agreeing values.

    A fixed blocking delay separates consecutive provider calls.

    Parameters
    ----------
    sources : Sequence[MetadataSource]
        Providers to query, in order.
    delay_ms : int, optional
        Delay between provider calls in milliseconds.
    logger : AuditLogger | None, optional
        Receives ``source_unavailable`` warnings.
    sleep : Callable[[float], None], optional
        Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        sources: Sequence[MetadataSource],
        delay_ms: int = 0,
        logger: AuditLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")
        self.sources = list(sources)
        self.delay_ms = delay_ms
        self.logger = logger
        self._sleep = sleep
        self._calls = 0

    def _throttle(self) -> None:
        if self._calls and self.delay_ms:
            self._sleep(self.delay_ms / 1000)
        self._calls += 1

    def fetch(self, source: MetadataSource, record: Record) -> dict[str, Any]:
        """Fetch from one source; failures return an empty dict."""
        self._throttle()
        try:
            return source.fetch(record)
        except ExternalSourceError as e:
            if self.logger:
                self.logger.source_unavailable(source.source_id, str(e), rid=record.id)
            return {}

    def corroborate(self, record: Record) -> list[FieldSource]:
        """Return new :class:`FieldSource` entries for agreeing provider values."""
        entries: list[FieldSource] = []
        for source in self.sources:
            values = self.fetch(source, record)
            for name in sorted(values):
                if name not in record.fields or not values_agree(values[name], record.get(name)):
                    continue
                entries.append(
                    FieldSource(
                        record_id=record.id,
                        field_name=name,
                        source_id=source.source_id,
                        reliability=source.reliability,
                        value=values[name],
                        machine_generated=source.machine_generated,
                    )
                )
        return entries

    def close(self) -> None:
        """Close sources that hold network resources."""
        for source in self.sources:
            close = getattr(source, "close", None)
            if close is not None:
                close()

    def enrich_ledger(self, record: Record, ledger: FieldSourceLedger) -> int:
        """Append corroborating entries for *record* to *ledger*; returns count added.

        Entries the ledger already holds are not appended again.
        """
        added = 0
        for entry in self.corroborate(record):
            if ledger.has(entry):
                continue
            ledger.add(entry)
            added += 1
        return added
