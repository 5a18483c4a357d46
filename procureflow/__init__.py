"""ProcureFlow: approval routing for purchase orders and supplier invoices."""

__version__ = "0.1.0"
