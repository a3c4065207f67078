from slowapi import Limiter
from slowapi.util import get_remote_address

from crm_webhooks.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=get_settings().RATE_LIMIT_STORAGE_URI,
)
