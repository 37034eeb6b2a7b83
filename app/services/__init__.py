"""
                        Services Module

Business logic behind the HTTP endpoints.

Services:
    - sequence: durable order-number counter (database / file / memory)
    - ordering: order number generator, order intake, daily reset scheduler
    - records: generic persistence for menus, contacts, reservations, orders
    - excel_manager: file-locked Excel archive of closed business days
"""

from app.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
