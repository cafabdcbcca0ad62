"""
Supabase client configuration.

The chat front end authenticates to this service, not to Supabase, so both the
API process and the Celery workers talk to Supabase with the service role key.

Uses lru_cache to ensure only one client instance is created per process.
"""

import os
from functools import lru_cache
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """
    Get Service Role client (bypasses RLS).

    Returns:
        Supabase Client instance with service role privileges
    """
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_ROLE_KEY"]
    return create_client(url, key)
