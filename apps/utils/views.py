# apps/utils/views.py
from django.conf import settings
from django.utils import timezone
from drf_spectacular.utils import extend_schema
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import ServerInfoSerializer


class ServerInfoView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(responses=ServerInfoSerializer)
    def get(self, request):
        serializer = ServerInfoSerializer({
            "name": settings.PROJECT_NAME,
            "version": settings.SPECTACULAR_SETTINGS["VERSION"],
            "api_prefix": "/api/v1/",
            "server_time": timezone.now(),
            "time_zone": settings.TIME_ZONE,
        })
        return Response(serializer.data)
