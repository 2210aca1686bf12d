from django.db.models import OuterRef, Subquery
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema

from apps.accounts.permissions import IsAdmin
from apps.utils.throttle import BurstRateThrottle
from .actors import Actor
from .exceptions import StatusValidationError
from .models import Order, OrderStatusEntry
from .serializers import (
    AllowedTransitionsSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
    TimelineEntrySerializer,
)
from .services import OrderStatusService


def _error_message(errors):
    return "; ".join(
        f"{field}: {' '.join(str(m) for m in messages)}" for field, messages in errors.items()
    )


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Customers see their own orders; shop admins see every order and drive
    status changes.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[0-9a-fA-F-]{36}"
    status_service_class = OrderStatusService

    def get_queryset(self):
        newest = (
            OrderStatusEntry.objects
            .filter(order=OuterRef("pk"))
            .order_by("-timestamp", "-sequence")
            .values("status")[:1]
        )
        qs = Order.objects.prefetch_related('items').annotate(latest_status=Subquery(newest))
        if getattr(self.request.user, "is_admin", False):
            return qs
        return qs.filter(user=self.request.user)

    def get_status_service(self):
        return self.status_service_class()

    def _timeline_response(self, timeline, status_code=status.HTTP_200_OK):
        return Response(TimelineEntrySerializer(timeline, many=True).data, status=status_code)

    @extend_schema(responses=TimelineEntrySerializer(many=True))
    @action(detail=True, methods=['get'])
    def timeline(self, request, pk=None):
        order = self.get_object()
        return self._timeline_response(self.get_status_service().get_timeline(order.pk))

    @extend_schema(request=StatusUpdateSerializer, responses=TimelineEntrySerializer(many=True))
    @action(
        detail=True,
        methods=['post'],
        url_path='status',
        permission_classes=[IsAuthenticated, IsAdmin],
        throttle_classes=[BurstRateThrottle],
    )
    def update_status(self, request, pk=None):
        order = self.get_object()
        serializer = StatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            raise StatusValidationError(_error_message(serializer.errors))

        timeline = self.get_status_service().transition(
            order.pk,
            serializer.validated_data['status'],
            actor=Actor.from_user(request.user),
            notes=serializer.validated_data.get('notes') or "",
        )
        return self._timeline_response(timeline)

    @extend_schema(responses=AllowedTransitionsSerializer)
    @action(detail=True, methods=['get'], permission_classes=[IsAuthenticated, IsAdmin])
    def transitions(self, request, pk=None):
        order = self.get_object()
        service = self.get_status_service()
        data = {
            "current": service.current_status(order.pk),
            "allowed": service.allowed_next(order.pk),
            "terminal": service.is_terminal(order.pk),
        }
        return Response(AllowedTransitionsSerializer(data).data)
