"""Receivers (payable users) of a tenant and their compliance records."""

from uma_gateway.receivers.repos import ComplianceRecorder, ReceiverRepository
from uma_gateway.receivers.schemas import ReceiverCreate, ReceiverProfile


__all__ = [
    "ComplianceRecorder",
    "ReceiverCreate",
    "ReceiverProfile",
    "ReceiverRepository",
]
