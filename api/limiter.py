"""
api/limiter.py -- The one slowapi Limiter for Vaultroom.

Limited routes (limits come from Settings):
  POST /api/v1/auth/signup          signup_rate_limit
  POST /api/v1/auth/login           login_rate_limit
  POST /api/v1/vaults/{id}/upload   upload_rate_limit

Counters are keyed by client address and held in process memory, so they
reset on restart and are not shared between workers. Route modules and
api/main.py must import this instance; a second Limiter would count
separately. Tests call limiter.reset() to start each module from zero.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
