import logging
from django.http import JsonResponse
from django.db import connection, DatabaseError
from django.core.cache import cache

logger = logging.getLogger(__name__)

def health_check(request):
    status = {"db": "unknown", "cache": "unknown"}
    try:
        # Check DB
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        status["db"] = "ok"
        
        # Check Cache (Redis in production, locmem in demo)
        cache.set("health_check", "ok", timeout=5)
        if cache.get("health_check") != "ok":
            raise ConnectionError("cache round trip failed")
        status["cache"] = "ok"

        return JsonResponse({"status": "ok", "components": status}, status=200)
    except (DatabaseError, ConnectionError) as e:
        logger.warning(f"Health check failed: {e}")
        return JsonResponse(
            {"status": "error", "detail": str(e), "components": status}, 
            status=503
        )
