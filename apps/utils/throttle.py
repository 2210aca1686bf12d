from rest_framework.throttling import UserRateThrottle

class BurstRateThrottle(UserRateThrottle):
    """
    Short-window limit for write endpoints (status updates from the admin panel).
    Scope: 'burst'
    """
    scope = 'burst'

class SustainedRateThrottle(UserRateThrottle):
    """
    General API usage.
    """
    scope = 'sustained'
