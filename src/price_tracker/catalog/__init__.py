"""Product price catalog.

Modules:
- imaging: image acquisition and compression
- location: GPS hint lookup in image metadata
- extraction: vision-model client
- parser: model output classification and normalization
- staging: editable products awaiting approval
- storage: local and Supabase image stores
- db: SQLite product table
- service: extract/upload/save/search/recent
- formatting: display helpers for prices, dates and locations
"""

from .db import ProductDatabase
from .service import CatalogService
from .frontend.app import create_app

__all__ = [
    "CatalogService",
    "ProductDatabase",
    "create_app",
]
