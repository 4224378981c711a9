from .config import settings, get_settings
from .supabase_client import supabase, get_supabase_client
from .cache import TTLCache
from .clock import utc_now

__all__ = ["settings", "get_settings", "supabase", "get_supabase_client", "TTLCache", "utc_now"]
