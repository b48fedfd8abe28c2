from slowapi import Limiter

from gatekeeper.features.users.dependencies import get_authorization_header

# Keyed by the actor header so each actor gets its own budget
limiter = Limiter(key_func=get_authorization_header)
