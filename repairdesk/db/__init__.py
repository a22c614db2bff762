"""Database models and utilities."""

from .models import CustomerTable, RepairTicketTable

__all__ = [
    "CustomerTable",
    "RepairTicketTable",
]
