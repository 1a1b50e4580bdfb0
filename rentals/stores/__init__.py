from rentals.core.config import settings


def default_store():
    """Remote API store when a base URL is configured, local database otherwise."""
    if settings.api_base_url:
        from rentals.stores.http_store import HttpBackingStore

        return HttpBackingStore()

    from rentals.stores.sql_store import SqlBackingStore

    return SqlBackingStore()
