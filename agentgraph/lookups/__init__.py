"""Context lookups - user / product records referenced by a query"""
from .context_lookup import (
    LookupBackendError,
    ProductDataLookup,
    UserDataLookup,
    extract_product_identifiers,
    extract_user_identifiers,
)

__all__ = [
    "LookupBackendError",
    "ProductDataLookup",
    "UserDataLookup",
    "extract_product_identifiers",
    "extract_user_identifiers",
]
