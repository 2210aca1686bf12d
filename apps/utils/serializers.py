# apps/utils/serializers.py
from rest_framework import serializers


class ServerInfoSerializer(serializers.Serializer):
    name = serializers.CharField()
    version = serializers.CharField()
    api_prefix = serializers.CharField()
    # Clients compare this with timeline timestamps to spot clock skew
    server_time = serializers.DateTimeField()
    time_zone = serializers.CharField()
