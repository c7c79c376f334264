"""
Salesforce client: transport-agnostic operations over the REST API.

Usage::

    sf = SalesforceClient(ClientConfig(mode="rest", rest_proxy=proxy))

    resp = await sf.query(f"SELECT Id, Name FROM Contact WHERE Email = {sf.quote(email)}")
    created = await sf.create("Contact", {"FirstName": "Ada", "LastName": "Lovelace"})
    await sf.update("Contact", created.data["id"], {"Title": "CTO"})
    got = await sf.retrieve("Contact", created.data["id"], ["Id", "Name", "Title"])

Every operation also accepts a single mapping using the camelCase names of
the browser client, e.g. ``await sf.upsert({"sobject": "Contact",
"externalIdField": "Email", "externalIdValue": email, "record": {...}})``.

Operations return a :class:`ResponseEnvelope`. Failures raise
:class:`SfError` (``error_mode="throw"``, the default) or come back as
``ok=False`` envelopes (``error_mode="return"``). Missing required fields
always raise :class:`RequestValidationError` before anything is sent.
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote as urlquote

from .composite import (
    TREE_MAX_RECORDS,
    build_composite_body,
    check_size,
    chunked,
    plan_compound_batch,
    prepare_subrequests,
    subrequest_failures,
)
from .config import ClientConfig
from .endpoints import Endpoints
from .envelope import CallResult, ErrorInfo, QueryMeta, ResponseEnvelope
from .exceptions import ConfigurationError, RequestValidationError, SfError
from .presentation import Presenter, show_error
from .soql import escape_soql, format_datetime
from .transport import TransportAdapter, select_transport

_logger = logging.getLogger(__name__)

_ALIASES = {
    "id": "record_id",
    "externalIdField": "external_id_field",
    "externalIdValue": "external_id_value",
    "pageAll": "page_all",
    "chunkSize": "chunk_size",
    "allOrNone": "all_or_none",
    "collateSubrequests": "collate_subrequests",
    "batchSize": "batch_size",
    "envelopeSize": "envelope_size",
    "extraRequests": "extra_requests",
    "onRow": "on_row",
}


def _from_mapping(options: Mapping[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in options.items()}


def _require(operation: str, values: Mapping[str, Any]) -> None:
    missing = [name for name, value in values.items() if value is None or value == "" or value == []]
    if missing:
        raise RequestValidationError(operation, missing)


def _require_soql(operation: str, soql: Any) -> None:
    _require(operation, {"soql": soql})
    if not isinstance(soql, str):
        raise RequestValidationError(operation, ["soql"], reason="must be a SOQL string")


def _enveloped(fn):
    """Route an ``SfError`` escaping an operation through the client's error mode."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except SfError as err:
            return self._failure(err)

    return wrapper


class SalesforceClient:
    """Uniform Salesforce operations over a Canvas or REST transport."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        presenter: Optional[Presenter] = None,
        **overrides: Any,
    ) -> None:
        if config is None:
            config = ClientConfig(**overrides)
        elif overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config
        self.presenter = presenter
        self.transport: TransportAdapter = select_transport(config)
        _logger.debug("SalesforceClient ready (source=%s)", self.transport.source)

    # --------------------------- Helpers ------------------------------

    escape_soql = staticmethod(escape_soql)
    quote = staticmethod(escape_soql)
    format_datetime = staticmethod(format_datetime)

    @property
    def endpoints(self) -> Optional[Endpoints]:
        return self.transport.endpoints

    @property
    def source(self) -> str:
        return self.transport.source

    def show_error(self, err: Any, presenter: Optional[Presenter] = None) -> str:
        return show_error(err, presenter or self.presenter)

    async def _endpoints(self) -> Endpoints:
        await self.transport.prepare()
        endpoints = self.transport.endpoints
        if endpoints is None:
            raise ConfigurationError("Salesforce endpoints are not initialized.")
        return endpoints

    def _failure(self, err: SfError, **overrides: Any) -> ResponseEnvelope:
        if self.config.error_mode == "throw":
            raise err
        return ResponseEnvelope.from_error(err, **overrides)

    def _envelope(self, res: CallResult, method: str, url: str, **fields: Any) -> ResponseEnvelope:
        values: Dict[str, Any] = {"data": res.payload, "raw": res.payload}
        values.update(fields)
        return ResponseEnvelope(
            ok=res.ok,
            status=res.status,
            method=method,
            url=url,
            source=self.source,
            **values,
        )

    async def _call(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> ResponseEnvelope:
        res = await self.transport.ajax(method, url, params, body)
        return self._envelope(res, method, url)

    async def _sequential(self, operation: str, url: str, bodies: Sequence[Any]) -> ResponseEnvelope:
        """POST each body in turn; keep going after failures and collect every payload."""
        payloads: List[Any] = []
        last_ok: Optional[CallResult] = None
        last_err: Optional[SfError] = None
        failures = 0

        for n, body in enumerate(bodies, start=1):
            try:
                res = await self.transport.ajax("POST", url, None, body)
            except SfError as err:
                failures += 1
                last_err = err
                payloads.append(err.payload)
                _logger.warning("%s: chunk %d/%d failed: %s", operation, n, len(bodies), err.message)
                continue
            payloads.append(res.payload)
            last_ok = res

        if last_err is not None:
            if failures == len(bodies):
                return self._failure(last_err, data=payloads, raw=payloads)
            return ResponseEnvelope(
                ok=False,
                status=last_err.http_status,
                data=payloads,
                raw=payloads,
                method="POST",
                url=url,
                source=self.source,
                error=ErrorInfo(last_err.message, last_err.code),
            )
        assert last_ok is not None
        return self._envelope(last_ok, "POST", url, data=payloads, raw=payloads)

    # --------------------------- Query --------------------------------

    @_enveloped
    async def query(self, soql: Any, *, page_all: bool = True) -> ResponseEnvelope:
        """
        Run a SOQL query, following ``nextRecordsUrl`` while ``page_all`` is set.

        ``soql`` may be a string or a mapping ``{"soql": ..., "pageAll": ...}``.
        If a later page fails, the records gathered so far are returned with
        ``ok=False`` and ``meta.next_records_url`` pointing at the failed page.
        """
        if isinstance(soql, Mapping):
            opts = _from_mapping(soql)
            page_all = opts.get("page_all", page_all)
            soql = opts.get("soql")
        _require_soql("query", soql)

        endpoints = await self._endpoints()
        url = endpoints.query_url
        try:
            last = await self.transport.ajax("GET", url, {"q": soql})
        except SfError as err:
            return self._failure(err, meta=QueryMeta(soql=soql, done=False))

        page = last.payload or {}
        records: List[Any] = list(page.get("records") or [])
        total_size = page.get("totalSize")
        next_url = page.get("nextRecordsUrl")
        done = page.get("done", not next_url)
        pages = 1
        last_url = url

        while page_all and next_url:
            page_url = endpoints.absolute(next_url)
            try:
                last = await self.transport.ajax("GET", page_url)
            except SfError as err:
                _logger.warning(
                    "query: page %d failed (%s); returning %d records fetched so far",
                    pages + 1,
                    err.message,
                    len(records),
                )
                return ResponseEnvelope(
                    ok=False,
                    status=err.http_status,
                    data=records,
                    raw=err.payload,
                    method="GET",
                    url=page_url,
                    source=self.source,
                    error=ErrorInfo(err.message, err.code),
                    meta=QueryMeta(
                        soql=soql,
                        total_size=total_size,
                        done=False,
                        page_count=len(records),
                        pages_fetched=pages,
                        next_records_url=next_url,
                    ),
                )
            pages += 1
            page = last.payload or {}
            records.extend(page.get("records") or [])
            next_url = page.get("nextRecordsUrl")
            done = page.get("done", not next_url)
            last_url = page_url

        _logger.debug("query: %d records in %d page(s)", len(records), pages)
        meta = QueryMeta(
            soql=soql,
            total_size=total_size,
            done=bool(done),
            page_count=len(records),
            pages_fetched=pages,
            next_records_url=next_url,
        )
        return self._envelope(last, "GET", last_url, data=records, meta=meta)

    def bulk_query(self, soql: Any, on_row: Optional[Callable[[Any], Any]] = None) -> BulkQuery:
        """
        Stream a query page by page; see :class:`BulkQuery`.

        ``soql`` may be a string or a mapping ``{"soql": ..., "onRow": ...}``;
        ``on_row`` becomes the default callback of :meth:`BulkQuery.each`.
        """
        if isinstance(soql, Mapping):
            opts = _from_mapping(soql)
            on_row = opts.get("on_row", on_row)
            soql = opts.get("soql")
        _require_soql("bulk_query", soql)
        return BulkQuery(self, soql, on_row)

    # --------------------------- Records ------------------------------

    @_enveloped
    async def retrieve(
        self,
        sobject: Any = None,
        record_id: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> ResponseEnvelope:
        if isinstance(sobject, Mapping):
            return await self.retrieve(**_from_mapping(sobject))
        _require("retrieve", {"sobject": sobject, "id": record_id})
        endpoints = await self._endpoints()
        params = {"fields": ",".join(fields)} if fields else None
        return await self._call("GET", endpoints.sobject_url(sobject, record_id), params=params)

    @_enveloped
    async def create(self, sobject: Any = None, record: Optional[Mapping[str, Any]] = None) -> ResponseEnvelope:
        if isinstance(sobject, Mapping):
            return await self.create(**_from_mapping(sobject))
        _require("create", {"sobject": sobject, "record": record})
        endpoints = await self._endpoints()
        return await self._call("POST", endpoints.sobject_url(sobject), body=dict(record))

    @_enveloped
    async def update(
        self,
        sobject: Any = None,
        record_id: Optional[str] = None,
        record: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        if isinstance(sobject, Mapping):
            return await self.update(**_from_mapping(sobject))
        _require("update", {"sobject": sobject, "id": record_id, "record": record})
        endpoints = await self._endpoints()
        return await self._call("PATCH", endpoints.sobject_url(sobject, record_id), body=dict(record))

    @_enveloped
    async def upsert(
        self,
        sobject: Any = None,
        external_id_field: Optional[str] = None,
        external_id_value: Any = None,
        record: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        """
        Create or update by external id.

        ``data`` is ``{"id", "created": True, ...}`` when a record was inserted
        and usually ``None`` when an existing record was updated.
        """
        if isinstance(sobject, Mapping):
            return await self.upsert(**_from_mapping(sobject))
        _require(
            "upsert",
            {
                "sobject": sobject,
                "externalIdField": external_id_field,
                "externalIdValue": external_id_value,
                "record": record,
            },
        )
        endpoints = await self._endpoints()
        url = endpoints.sobject_url(sobject, external_id_field, urlquote(str(external_id_value), safe=""))
        return await self._call("PATCH", url, body=dict(record))

    @_enveloped
    async def delete(self, sobject: Any = None, record_id: Optional[str] = None) -> ResponseEnvelope:
        if isinstance(sobject, Mapping):
            return await self.delete(**_from_mapping(sobject))
        _require("delete", {"sobject": sobject, "id": record_id})
        endpoints = await self._endpoints()
        return await self._call("DELETE", endpoints.sobject_url(sobject, record_id))

    # --------------------------- Composite ----------------------------

    @_enveloped
    async def batch(
        self,
        requests: Any = None,
        *,
        all_or_none: bool = False,
        collate_subrequests: bool = False,
    ) -> ResponseEnvelope:
        """Send up to 25 sub-requests as one ``/composite`` call."""
        if isinstance(requests, Mapping):
            return await self.batch(**_from_mapping(requests))
        _require("batch", {"requests": requests})
        subrequests = prepare_subrequests(requests)

        endpoints = await self._endpoints()
        body = build_composite_body(
            subrequests,
            endpoints.version,
            all_or_none=all_or_none,
            collate_subrequests=collate_subrequests,
        )
        env = await self._call("POST", f"{endpoints.data_base}/composite", body=body)
        failed = subrequest_failures(env.data) if env.ok else []
        if failed:
            _logger.warning(
                "batch: %d of %d sub-requests failed (%s)",
                len(failed),
                len(subrequests),
                ", ".join(str(f.get("referenceId")) for f in failed),
            )
        return env

    @_enveloped
    async def create_tree(
        self,
        sobject: Any = None,
        records: Optional[Sequence[Mapping[str, Any]]] = None,
        *,
        chunk_size: int = TREE_MAX_RECORDS,
    ) -> ResponseEnvelope:
        """
        Insert records through ``/composite/tree/{sobject}``, ``chunk_size`` per call.

        Chunks are independent: a failed chunk does not undo earlier ones and
        later chunks are still sent. ``data`` lists every chunk's payload.
        """
        if isinstance(sobject, Mapping):
            return await self.create_tree(**_from_mapping(sobject))
        _require("create_tree", {"sobject": sobject, "records": records})
        check_size("create_tree", "chunk_size", chunk_size, TREE_MAX_RECORDS)

        endpoints = await self._endpoints()
        url = f"{endpoints.data_base}/composite/tree/{sobject}"
        bodies = [{"records": chunk} for chunk in chunked(records, chunk_size)]
        return await self._sequential("create_tree", url, bodies)

    @_enveloped
    async def compound_batch(
        self,
        records: Any = None,
        *,
        batch_size: int = 200,
        envelope_size: int = 25,
        all_or_none: bool = False,
        extra_requests: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> ResponseEnvelope:
        """
        Insert many records with sObject Collections packed into composite calls.

        Records need ``attributes.type``. One composite call is sent per group
        of ``envelope_size`` collection inserts; ``data`` lists each call's payload.
        """
        if isinstance(records, Mapping):
            opts = _from_mapping(records)
            opts.setdefault("records", opts.pop("requests", None))
            return await self.compound_batch(**opts)
        _require("compound_batch", {"records": records})
        groups = plan_compound_batch(
            records,
            batch_size=batch_size,
            envelope_size=envelope_size,
            all_or_none=all_or_none,
            extra_requests=extra_requests,
        )

        endpoints = await self._endpoints()
        bodies = [build_composite_body(g, endpoints.version, all_or_none=all_or_none) for g in groups]
        return await self._sequential("compound_batch", f"{endpoints.data_base}/composite", bodies)

    # --------------------------- Apex & misc --------------------------

    @_enveloped
    async def apex(
        self,
        method: Any = None,
        path: Optional[str] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> ResponseEnvelope:
        """Call an Apex REST endpoint under ``/services/apexrest``."""
        if isinstance(method, Mapping):
            return await self.apex(**_from_mapping(method))
        _require("apex", {"method": method, "path": path})
        endpoints = await self._endpoints()
        url = f"{endpoints.apex_base}/{path.lstrip('/')}"
        return await self._call(str(method).upper(), url, params=params, body=body)

    @_enveloped
    async def limits(self) -> ResponseEnvelope:
        endpoints = await self._endpoints()
        return await self._call("GET", f"{endpoints.data_base}/limits")

    @_enveloped
    async def describe(self, sobject: Optional[str] = None) -> ResponseEnvelope:
        """Global describe, or ``/sobjects/{sobject}/describe`` when an object is given."""
        endpoints = await self._endpoints()
        if sobject:
            return await self._call("GET", endpoints.sobject_url(sobject, "describe"))
        return await self._call("GET", f"{endpoints.data_base}/sobjects")


class BulkQuery:
    """
    Lazily paged query results.

    ``async for row in sf.bulk_query(soql)`` streams records; ``pages()``
    streams whole pages; ``collect()`` and ``each(on_row)`` consume everything.
    Page failures raise :class:`SfError` whatever the client's error mode.
    """

    def __init__(
        self,
        client: SalesforceClient,
        soql: str,
        on_row: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.client = client
        self.soql = soql
        self.on_row = on_row

    async def pages(self) -> AsyncIterator[List[Any]]:
        transport = self.client.transport
        endpoints = await self.client._endpoints()
        res = await transport.ajax("GET", endpoints.query_url, {"q": self.soql})
        while True:
            page = res.payload or {}
            yield list(page.get("records") or [])
            next_url = page.get("nextRecordsUrl")
            if not next_url:
                return
            res = await transport.ajax("GET", endpoints.absolute(next_url))

    async def _rows(self) -> AsyncIterator[Any]:
        async for page in self.pages():
            for row in page:
                yield row

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._rows()

    async def collect(self) -> List[Any]:
        return [row async for row in self._rows()]

    async def each(self, on_row: Optional[Callable[[Any], Any]] = None) -> int:
        """
        Call ``on_row`` (sync or async) for every record; return the count.

        Defaults to the callback given to ``bulk_query``.
        """
        on_row = on_row or self.on_row
        if on_row is None:
            raise RequestValidationError("bulk_query", ["onRow"])
        count = 0
        async for row in self._rows():
            result = on_row(row)
            if inspect.isawaitable(result):
                await result
            count += 1
        return count
