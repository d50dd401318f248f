from slowapi import Limiter
from slowapi.util import get_remote_address

# Keyed on client address; applied to deployment-creating routes
limiter = Limiter(key_func=get_remote_address)
