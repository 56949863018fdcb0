"""
Context lookups - resolve user / product records mentioned in a free-text query.

Identifiers are pulled out of the query text:
    user:    "user id: X", an e-mail address, "named X" / "name: X"
    product: "product id: X", "product: NAME" / "item: NAME"

A lookup returns a partial context bag ({"user_data": {...}} or
{"product_data": [...]}) or {} when nothing matches. Not-found is never an
error; only a failing backend raises LookupBackendError.
"""

import re
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

USER_ID_PATTERN = re.compile(r"user id[:\s]+(\w+)", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
USER_NAME_PATTERN = re.compile(r"(?:named|name[:\s]+)([A-Za-z\s]+)", re.IGNORECASE)

PRODUCT_ID_PATTERN = re.compile(r"product id[:\s]+(\w+)", re.IGNORECASE)
PRODUCT_NAME_PATTERN = re.compile(r"(?:product|item)[:\s]+([A-Za-z0-9\s-]+)", re.IGNORECASE)


class LookupBackendError(Exception):
    """The lookup source could not be queried (transport / database failure)."""

    def __init__(self, domain: str, message: str):
        self.domain = domain
        super().__init__(f"{domain} lookup failed: {message}")


def _row_to_dict(row) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        data[column.key] = value.isoformat() if hasattr(value, "isoformat") else value
    return data


def extract_user_identifiers(query: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """(user_id, email, name) found in the query; unmatched parts are None."""
    user_id = email = name = None
    match = USER_ID_PATTERN.search(query)
    if match:
        user_id = match.group(1)
    match = EMAIL_PATTERN.search(query)
    if match:
        email = match.group(0)
    match = USER_NAME_PATTERN.search(query)
    if match and match.group(1).strip():
        name = match.group(1).strip()
    return user_id, email, name


def extract_product_identifiers(query: str) -> Tuple[Optional[str], Optional[str]]:
    """(product_id, name) found in the query; unmatched parts are None."""
    product_id = name = None
    match = PRODUCT_ID_PATTERN.search(query)
    if match:
        product_id = match.group(1)
    match = PRODUCT_NAME_PATTERN.search(query)
    if match and match.group(1).strip():
        name = match.group(1).strip()
    return product_id, name


class UserDataLookup:
    """Looks up a single user by id, e-mail or (partial) name."""

    domain = "user"

    def __init__(self, session_factory=None):
        self._sf = session_factory

    def _factory(self):
        if self._sf is None:
            from agentgraph.db.sync_bridge import optional_session_factory
            self._sf = optional_session_factory()
        if self._sf is None:
            raise LookupBackendError(self.domain, "database unavailable")
        return self._sf

    async def lookup(self, query: str) -> Dict[str, Any]:
        from sqlalchemy import select
        from agentgraph.db.models import UserModel

        stmt = None
        user_id, email, name = extract_user_identifiers(query)
        if user_id:
            stmt = select(UserModel).where(UserModel.id == user_id)
        elif email:
            stmt = select(UserModel).where(UserModel.email == email)
        elif name:
            stmt = select(UserModel).where(UserModel.name.ilike(f"%{name}%"))
        if stmt is None:
            return {}

        try:
            async with self._factory()() as session:
                row = (await session.execute(stmt.limit(1))).scalars().first()
        except LookupBackendError:
            raise
        except Exception as e:
            logger.error(f"[LOOKUP] User query failed: {e}")
            raise LookupBackendError(self.domain, str(e)) from e

        if row is None:
            logger.debug("[LOOKUP] No user matched query")
            return {}
        return {"user_data": _row_to_dict(row)}


class ProductDataLookup:
    """Looks up products by id or (partial) name. Several may match."""

    domain = "product"

    def __init__(self, session_factory=None, max_results: int = 10):
        self._sf = session_factory
        self._max_results = max_results

    def _factory(self):
        if self._sf is None:
            from agentgraph.db.sync_bridge import optional_session_factory
            self._sf = optional_session_factory()
        if self._sf is None:
            raise LookupBackendError(self.domain, "database unavailable")
        return self._sf

    async def lookup(self, query: str) -> Dict[str, Any]:
        from sqlalchemy import select
        from agentgraph.db.models import ProductModel

        stmt = None
        product_id, name = extract_product_identifiers(query)
        if product_id:
            stmt = select(ProductModel).where(ProductModel.id == product_id)
        elif name:
            stmt = select(ProductModel).where(ProductModel.name.ilike(f"%{name}%"))
        if stmt is None:
            return {}

        try:
            async with self._factory()() as session:
                rows: List = list((await session.execute(stmt.limit(self._max_results))).scalars().all())
        except LookupBackendError:
            raise
        except Exception as e:
            logger.error(f"[LOOKUP] Product query failed: {e}")
            raise LookupBackendError(self.domain, str(e)) from e

        if not rows:
            return {}
        logger.debug(f"[LOOKUP] {len(rows)} product(s) matched")
        return {"product_data": [_row_to_dict(r) for r in rows]}
