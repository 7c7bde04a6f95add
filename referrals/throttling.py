"""
Rate limits for the unauthenticated entry points.

Function views built with ``@api_view`` do not pass ``throttle_scope`` on
to DRF, so each public endpoint names its throttle class instead.  Rates
come from ``DEFAULT_THROTTLE_RATES`` under the scope names below.
"""
from rest_framework.throttling import AnonRateThrottle


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


class RegisterRateThrottle(AnonRateThrottle):
    scope = 'register'
