"""Supabase client construction for database operations."""

from typing import Any

from supabase import Client, create_client

from src.core.config import Settings


def create_supabase_client(settings: Settings) -> Client:
    """Create a Supabase client for database operations.

    Uses the secret key for backend operations, which bypasses RLS
    at the PostgREST level. The client is created once by the application
    lifespan and handed to the document store; it is not cached here.

    Args:
        settings: Application settings with Supabase credentials.

    Returns:
        Client: Supabase client instance.
    """
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def check_database_connection(client: Client) -> dict[str, Any]:
    """Check if database connection is healthy.

    Performs a simple query to verify database connectivity.

    Args:
        client: Supabase client to probe.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client.table("order_counters").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
