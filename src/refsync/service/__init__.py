"""
Clients for the remote record service.

- base: RecordService contract and write request types
- webapi: OData Web API implementation over requests
"""

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
from .fetchxml import build_fetch_xml, parse_fetch_xml
from .webapi import WebApiRecordService

__all__ = [
    'RecordService',
    'WebApiRecordService',
    'UpsertRequest',
    'UpdateRequest',
    'SetStateRequest',
    'AssociateRequest',
    'DisassociateRequest',
    'WriteRequest',
    'BatchItemResult',
    'BatchResponse',
    'build_fetch_xml',
    'parse_fetch_xml',
]
