"""
Gradian - Schema-Driven Procurement Backend
===========================================

Gradian serves any entity collection described by a JSON schema definition
(vendors, tenders, purchase orders, shipments, invoices, companies, ...)
through one generic Repository -> Service -> Controller chain, with typed
relations between entities and dashboard aggregations on top.

Usage:
    # Seed the default schemas and start the API server
    python -m gradian init
    python -m gradian runserver

    # Programmatic usage
    >>> from gradian.api import create_app
    >>> from gradian.config import AppSettings
    >>> app = create_app(AppSettings())

License: MIT
Author: Gradian Development Team
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Gradian Development Team"
__license__ = "MIT"

__title__ = "gradian"
__description__ = "Schema-driven procurement CRUD backend"
