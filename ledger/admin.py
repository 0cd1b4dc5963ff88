"""
ledger/admin.py

Admin authority: the single owner identity that verifies and deactivates
providers.  ``verified`` and ``active`` are independent flags and neither
operation touches the other one.  There is no reactivation.
"""

import logging
import sqlite3

from ledger.errors import NotFound, OwnerOnly
from storage.db import LedgerStore
from storage.models import Provider

logger = logging.getLogger(__name__)


def _load_for_owner(
    store: LedgerStore,
    owner: str,
    caller: str,
    provider_id: int,
    _conn: sqlite3.Connection,
) -> Provider:
    row = store.get_provider(provider_id, _conn=_conn)
    if row is None:
        raise NotFound(f"Provider id={provider_id} does not exist.")
    if caller != owner:
        logger.warning("'%s' attempted an owner-only change on provider %d", caller, provider_id)
        raise OwnerOnly(f"Only the owner may change provider id={provider_id}.")
    return Provider(**row)


def verify_provider(
    store: LedgerStore,
    owner: str,
    caller: str,
    provider_id: int,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> Provider:
    """
    Mark *provider_id* as verified.

    Raises:
        NotFound:  If the provider does not exist.
        OwnerOnly: If *caller* is not *owner*.
    """
    provider = _load_for_owner(store, owner, caller, provider_id, _conn)
    provider = provider.model_copy(update={"verified": True})
    store.put_provider(provider.model_dump(), _conn=_conn)
    store.append_event(
        "provider-verified", caller, now, {"provider_id": provider_id}, _conn=_conn
    )
    logger.info("Provider id=%d verified", provider_id)
    return provider


def deactivate_provider(
    store: LedgerStore,
    owner: str,
    caller: str,
    provider_id: int,
    *,
    now: int,
    _conn: sqlite3.Connection,
) -> Provider:
    """
    Mark *provider_id* as inactive.  One-way.

    Raises:
        NotFound:  If the provider does not exist.
        OwnerOnly: If *caller* is not *owner*.
    """
    provider = _load_for_owner(store, owner, caller, provider_id, _conn)
    provider = provider.model_copy(update={"active": False})
    store.put_provider(provider.model_dump(), _conn=_conn)
    store.append_event(
        "provider-deactivated", caller, now, {"provider_id": provider_id}, _conn=_conn
    )
    logger.info("Provider id=%d deactivated", provider_id)
    return provider
