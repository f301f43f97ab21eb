"""
Web API record service.

Talks to one environment over its OData Web API using requests:

- OAuth2 client-credentials token from the identity platform
- FetchXML reads, 5000 records per page, following paging cookies
- table schema and many-to-many metadata from the metadata endpoints
- composite writes through ``$batch`` with ``Prefer: odata.continue-on-error``

Reads are retried on transient failures. Writes are never retried: a failed
``$batch`` call propagates and is recorded by the caller.
"""

import json
import logging
import re
import time
import uuid
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from decimal import Decimal
from typing import Any
from urllib.parse import unquote

import requests

from refsync.errors import RelationshipResolutionError
from refsync.models import (
    STATE_FIELD,
    STATUS_FIELD,
    AttributeMetadata,
    ManyToManyMetadata,
    Record,
    RecordSet,
    TableSchema,
    ValueKind,
)
from refsync.values import Choice, ManagedBoolean, Money, Reference
from utils.retry import retry_remote_operation
from utils.tracing import trace_function

from .base import (
    AssociateRequest,
    BatchItemResult,
    BatchResponse,
    DisassociateRequest,
    RecordService,
    SetStateRequest,
    UpdateRequest,
    UpsertRequest,
    WriteRequest,
)
from .fetchxml import build_fetch_xml

logger = logging.getLogger(__name__)

API_VERSION = "v9.2"
PAGE_SIZE = 5000
TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

FORMATTED_VALUE = "@OData.Community.Display.V1.FormattedValue"
LOOKUP_LOGICAL_NAME = "@Microsoft.Dynamics.CRM.lookuplogicalname"
MORE_RECORDS = "@Microsoft.Dynamics.CRM.morerecords"
PAGING_COOKIE = "@Microsoft.Dynamics.CRM.fetchxmlpagingcookie"

_ATTRIBUTE_KINDS = {
    "Lookup": ValueKind.REFERENCE,
    "Customer": ValueKind.REFERENCE,
    "Owner": ValueKind.REFERENCE,
    "Picklist": ValueKind.CHOICE,
    "State": ValueKind.CHOICE,
    "Status": ValueKind.CHOICE,
    "Money": ValueKind.MONEY,
    "ManagedProperty": ValueKind.MANAGED_BOOLEAN,
}

_LOOKUP_KEY = re.compile(r"^_(?P<name>.+)_value$")
_STATUS_LINE = re.compile(r"^HTTP/\d\.\d (?P<status>\d{3})", re.MULTILINE)


class _EntityInfo:
    """Cached metadata needed to address and decode one table."""

    def __init__(self, schema: TableSchema, entity_set: str, navigation: dict[str, str]):
        self.schema = schema
        self.entity_set = entity_set
        # Lookup attribute -> single-valued navigation property used for binds
        self.navigation = navigation
        self.kinds = {a.name.lower(): a.value_kind for a in schema.attributes}


class WebApiRecordService(RecordService):
    """
    RecordService backed by the OData Web API of one environment.

    Example:
        >>> service = WebApiRecordService(
        ...     "https://contoso-dev.crm.dynamics.com",
        ...     tenant_id="...", client_id="...", client_secret="...",
        ... )
        >>> accounts = service.retrieve_records("account")
    """

    def __init__(
        self,
        url: str,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        access_token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 120.0,
        page_size: int = PAGE_SIZE,
    ):
        """
        Initialize the service

        Args:
            url: Environment URL (e.g. https://contoso.crm.dynamics.com)
            tenant_id: Directory (tenant) id used for client credentials
            client_id: Application (client) id
            client_secret: Application client secret
            access_token: Pre-acquired bearer token; skips client credentials
            session: requests session to use (default: a new session)
            timeout: Per-request timeout in seconds
            page_size: Records per FetchXML page

        Raises:
            ValueError: If neither a token nor full client credentials are given
        """
        if not url:
            raise ValueError("Environment URL not provided")
        if not access_token and not (tenant_id and client_id and client_secret):
            raise ValueError(
                "Either an access token or tenant id, client id and client secret "
                "must be provided"
            )

        self.url = url.rstrip("/")
        self.environment = self.url
        self.api_url = f"{self.url}/api/data/{API_VERSION}"
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()

        self._access_token = access_token
        self._token_expires_at = float("inf") if access_token else 0.0
        self._entities: dict[str, _EntityInfo] = {}

        logger.info(f"Initialized Web API client for {self.url}")

    # ========== Authentication ==========

    @retry_remote_operation(max_retries=3)
    def _request_token(self) -> dict[str, Any]:
        response = self.session.post(
            TOKEN_URL.format(tenant_id=self.tenant_id),
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": f"{self.url}/.default",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def _token(self) -> str:
        # Refreshed one minute before expiry
        if self._access_token and time.monotonic() < self._token_expires_at - 60:
            return self._access_token

        payload = self._request_token()
        self._access_token = payload["access_token"]
        self._token_expires_at = time.monotonic() + float(payload.get("expires_in", 3600))
        logger.debug(f"Acquired access token for {self.url}")
        return self._access_token

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._token()}",
            "Accept": "application/json",
            "OData-MaxVersion": "4.0",
            "OData-Version": "4.0",
        }
        headers.update(extra)
        return headers

    @retry_remote_operation(max_retries=3)
    def _get_json(
        self, path: str, params: dict[str, str] | None = None, **headers: str
    ) -> dict[str, Any]:
        response = self.session.get(
            f"{self.api_url}/{path}",
            params=params,
            headers=self._headers(**headers),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    # ========== Metadata ==========

    def _entity(self, type: str) -> _EntityInfo:
        info = self._entities.get(type)
        if info is not None:
            return info

        data = self._get_json(
            f"EntityDefinitions(LogicalName='{type}')",
            params={
                "$select": "LogicalName,EntitySetName,PrimaryIdAttribute,PrimaryNameAttribute",
                "$expand": (
                    "Attributes($select=LogicalName,AttributeType,IsValidForCreate,"
                    "IsValidForUpdate,AttributeOf),"
                    "ManyToOneRelationships($select=ReferencingAttribute,"
                    "ReferencingEntityNavigationPropertyName)"
                ),
            },
        )

        attributes = []
        for attribute in data.get("Attributes", []):
            # Virtual companions of lookups and choices (e.g. "parentidname")
            if attribute.get("AttributeOf"):
                continue
            attributes.append(AttributeMetadata(
                name=attribute["LogicalName"],
                creatable=bool(attribute.get("IsValidForCreate")),
                updatable=bool(attribute.get("IsValidForUpdate")),
                value_kind=_ATTRIBUTE_KINDS.get(
                    attribute.get("AttributeType"), ValueKind.SCALAR
                ),
            ))

        navigation = {
            relationship["ReferencingAttribute"].lower():
                relationship["ReferencingEntityNavigationPropertyName"]
            for relationship in data.get("ManyToOneRelationships", [])
            if relationship.get("ReferencingAttribute")
        }

        schema = TableSchema(
            type=data.get("LogicalName", type),
            primary_key_field=data["PrimaryIdAttribute"],
            attributes=tuple(attributes),
            primary_name_field=data.get("PrimaryNameAttribute"),
        )
        info = _EntityInfo(schema, data["EntitySetName"], navigation)
        self._entities[type] = info

        logger.debug(
            f"Loaded metadata for {type}: {len(attributes)} attribute(s), "
            f"entity set {info.entity_set}"
        )
        return info

    @trace_function("webapi.get_schema", component="webapi")
    def get_schema(self, type: str) -> TableSchema:
        return self._entity(type).schema

    @trace_function("webapi.resolve_many_to_many_metadata", component="webapi")
    def resolve_many_to_many_metadata(self, relationship_name: str) -> ManyToManyMetadata:
        try:
            data = self._get_json(
                f"RelationshipDefinitions(SchemaName='{relationship_name}')"
                f"/Microsoft.Dynamics.CRM.ManyToManyRelationshipMetadata",
                params={
                    "$select": (
                        "IntersectEntityName,Entity1LogicalName,Entity1IntersectAttribute,"
                        "Entity2LogicalName,Entity2IntersectAttribute"
                    ),
                },
            )
            return ManyToManyMetadata(
                intersect_entity=data["IntersectEntityName"],
                entity1_name=data["Entity1LogicalName"],
                entity1_id_field=data["Entity1IntersectAttribute"],
                entity2_name=data["Entity2LogicalName"],
                entity2_id_field=data["Entity2IntersectAttribute"],
            )
        except (requests.RequestException, KeyError) as e:
            raise RelationshipResolutionError(relationship_name, str(e)) from e

    # ========== Reads ==========

    def retrieve_records(self, type: str, filter: str | None = None) -> RecordSet:
        return self.retrieve_records_by_raw_query(build_fetch_xml(type, filter))

    @trace_function("webapi.retrieve_records", component="webapi")
    def retrieve_records_by_raw_query(self, query: str) -> RecordSet:
        try:
            fetch = ET.fromstring(query)
        except ET.ParseError as e:
            raise ValueError(f"Invalid FetchXML query: {e}") from e
        entity = fetch.find("entity")
        if entity is None or not entity.get("name"):
            raise ValueError("FetchXML query must contain <fetch><entity name='...'>")

        table = entity.get("name")
        info = self._entity(table)
        rows = self._fetch_all(info, fetch)

        records = [
            self._to_record(info, row, index) for index, row in enumerate(rows)
        ]
        logger.debug(f"Retrieved {len(records)} {table} record(s) from {self.url}")
        return RecordSet(table, records)

    def _fetch_all(self, info: _EntityInfo, fetch: ET.Element) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        page = 1
        cookie = None

        while True:
            fetch.set("page", str(page))
            fetch.set("count", str(self.page_size))
            if cookie:
                fetch.set("paging-cookie", cookie)

            data = self._get_json(
                info.entity_set,
                params={"fetchXml": ET.tostring(fetch, encoding="unicode")},
                Prefer='odata.include-annotations="*"',
            )
            rows.extend(data.get("value", []))

            if not data.get(MORE_RECORDS):
                return rows

            page += 1
            cookie = _paging_cookie(data.get(PAGING_COOKIE))
            logger.debug(f"  Fetching page {page} of {info.schema.type}...")

    def _to_record(self, info: _EntityInfo, row: dict[str, Any], index: int) -> Record:
        attributes: dict[str, Any] = {}
        formatted: dict[str, str] = {}

        for key, value in row.items():
            if "@" in key:
                continue

            match = _LOOKUP_KEY.match(key)
            if match:
                name = match.group("name")
                if value is None:
                    attributes[name] = None
                    continue
                display = row.get(f"{key}{FORMATTED_VALUE}")
                attributes[name] = Reference(
                    target_type=row.get(f"{key}{LOOKUP_LOGICAL_NAME}", ""),
                    target_id=str(value),
                    name=display,
                )
                if display is not None:
                    formatted[name] = display
                continue

            attributes[key] = _decode_value(info.kinds.get(key.lower()), value)
            display = row.get(f"{key}{FORMATTED_VALUE}")
            if display is not None:
                formatted[key] = display

        primary_key = info.schema.primary_key_field
        record_id = attributes.get(primary_key)
        if record_id is None:
            record_id = f"{info.schema.type}:{index}"

        return Record(
            id=str(record_id),
            type=info.schema.type,
            attributes=attributes,
            formatted_values=formatted,
        )

    # ========== Writes ==========

    def execute_batch(
        self, requests_: Sequence[WriteRequest], continue_on_error: bool = True
    ) -> BatchResponse:
        if not requests_:
            return BatchResponse(faulted=False, results=[])

        boundary = f"batch_{uuid.uuid4()}"
        body = self._batch_body(requests_, boundary)

        headers = self._headers(**{"Content-Type": f"multipart/mixed; boundary={boundary}"})
        if continue_on_error:
            headers["Prefer"] = "odata.continue-on-error"

        logger.debug(f"Submitting $batch of {len(requests_)} request(s) to {self.url}")
        response = self.session.post(
            f"{self.api_url}/$batch",
            data=body.encode("utf-8"),
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()

        results = parse_batch_response(
            response.text, response.headers.get("Content-Type", ""), len(requests_)
        )
        return BatchResponse(
            faulted=any(result.faulted for result in results),
            results=results,
        )

    def _batch_body(self, requests_: Sequence[WriteRequest], boundary: str) -> str:
        parts = []
        for content_id, request in enumerate(requests_, 1):
            method, path, payload, extra_headers = self._http_request(request)
            lines = [
                f"--{boundary}",
                "Content-Type: application/http",
                "Content-Transfer-Encoding: binary",
                f"Content-ID: {content_id}",
                "",
                f"{method} {self.api_url}/{path} HTTP/1.1",
            ]
            if payload is not None:
                lines.append("Content-Type: application/json; type=entry")
            lines.extend(f"{name}: {value}" for name, value in extra_headers.items())
            lines.append("")
            lines.append(json.dumps(payload) if payload is not None else "")
            parts.append("\r\n".join(lines))
        parts.append(f"--{boundary}--\r\n")
        return "\r\n".join(parts)

    def _http_request(self, request: WriteRequest):
        if isinstance(request, (UpsertRequest, UpdateRequest)):
            info = self._entity(request.type)
            payload = self._encode_attributes(info, request.attributes)
            # If-Match turns the PATCH into a pure update that never creates
            headers = {"If-Match": "*"} if isinstance(request, UpdateRequest) else {}
            return "PATCH", f"{info.entity_set}({request.id})", payload, headers

        if isinstance(request, SetStateRequest):
            info = self._entity(request.type)
            payload = {STATE_FIELD: request.state}
            if request.status != -1:
                payload[STATUS_FIELD] = request.status
            return "PATCH", f"{info.entity_set}({request.id})", payload, {"If-Match": "*"}

        if isinstance(request, AssociateRequest):
            entity1 = self._entity(request.entity1_type)
            entity2 = self._entity(request.entity2_type)
            path = f"{entity1.entity_set}({request.entity1_id})/{request.relationship}/$ref"
            payload = {"@odata.id": f"{self.api_url}/{entity2.entity_set}({request.entity2_id})"}
            return "POST", path, payload, {}

        if isinstance(request, DisassociateRequest):
            entity1 = self._entity(request.entity1_type)
            path = (
                f"{entity1.entity_set}({request.entity1_id})/{request.relationship}"
                f"({request.entity2_id})/$ref"
            )
            return "DELETE", path, None, {}

        raise TypeError(f"Unsupported write request: {type(request).__name__}")

    def _encode_attributes(self, info: _EntityInfo, attributes: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, value in attributes.items():
            if isinstance(value, Reference) or info.kinds.get(name.lower()) == ValueKind.REFERENCE:
                navigation = info.navigation.get(name.lower(), name)
                if value is None:
                    payload[f"{navigation}@odata.bind"] = None
                else:
                    target = self._entity(value.target_type)
                    payload[f"{navigation}@odata.bind"] = f"/{target.entity_set}({value.target_id})"
                continue
            payload[name] = _encode_value(value)
        return payload


def _paging_cookie(annotation: str | None) -> str | None:
    """Extract the paging cookie to send with the next FetchXML page."""
    if not annotation:
        return None
    try:
        cookie = ET.fromstring(annotation).get("pagingcookie")
    except ET.ParseError:
        logger.warning("Ignoring unparseable paging cookie annotation")
        return None
    # The cookie is URL-encoded twice inside the annotation
    return unquote(unquote(cookie)) if cookie else None


def _decode_value(kind: str | None, value: Any) -> Any:
    if value is None:
        return None
    if kind == ValueKind.CHOICE and isinstance(value, int):
        return Choice(value)
    if kind == ValueKind.MONEY:
        return Money(Decimal(str(value)))
    if kind == ValueKind.MANAGED_BOOLEAN:
        if isinstance(value, dict):
            value = value.get("Value")
        return ManagedBoolean(bool(value))
    return value


def _encode_value(value: Any) -> Any:
    if isinstance(value, Choice):
        return value.value
    if isinstance(value, Money):
        return float(value.value)
    if isinstance(value, ManagedBoolean):
        return {"Value": value.value}
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def parse_batch_response(body: str, content_type: str, expected: int) -> list[BatchItemResult]:
    """
    Parse a multipart ``$batch`` response into per-request results.

    Responses come back in request order. Requests without a response part
    (the service stopped after a fault) are reported as not executed.

    Args:
        body: Raw multipart response body
        content_type: Response Content-Type header carrying the boundary
        expected: Number of requests submitted

    Returns:
        One BatchItemResult per submitted request, in order
    """
    match = re.search(r'boundary="?([^";]+)"?', content_type)
    if not match:
        raise ValueError(f"Missing multipart boundary in Content-Type: {content_type!r}")
    boundary = match.group(1)

    results: list[BatchItemResult] = []
    for part in body.split(f"--{boundary}"):
        part = part.strip()
        if not part or part == "--":
            continue

        status_match = _STATUS_LINE.search(part)
        if not status_match:
            continue

        status = int(status_match.group("status"))
        fault = None
        if status >= 400:
            fault = _error_message(part[status_match.end():], status)
        results.append(BatchItemResult(index=len(results), fault_message=fault))

    for index in range(len(results), expected):
        results.append(BatchItemResult(index=index, fault_message="Not executed"))

    return results[:expected]


def _error_message(http_part: str, status: int) -> str:
    """Pull the OData error message out of one response part."""
    _, _, payload = http_part.partition("\r\n\r\n")
    if not payload:
        _, _, payload = http_part.partition("\n\n")
    payload = payload.strip()

    try:
        error = json.loads(payload).get("error", {})
        message = error.get("message")
    except (ValueError, AttributeError):
        message = None

    return message or f"HTTP {status}"
