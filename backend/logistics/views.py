import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from checkout.errors import InvalidCheckoutState, ServiceAreaViolation
from checkout.models import DeliveryMethod
from dispatch.cod import CODCollectionError
from dispatch.state_machines.order_state import Actor, TrackingInfo, TransitionError
from dispatch.state_machines.partner_state import AssignmentError
from dispatch.tracking import GpsFix
from orders.models import OrderStatus
from orders.store import OrderNotFound
from payments.gateway import PaymentError
from users.models import User

from . import services
from .models import Address, CheckoutSession, Order, Product
from .repositories import DjangoPartnerRoster
from .serializers import (
    AddressSerializer,
    AssignPartnerSerializer,
    CheckoutRequestSerializer,
    CollectCODSerializer,
    DeliveryTrackingSerializer,
    OrderSerializer,
    OrderStatusHistorySerializer,
    PartnerSummarySerializer,
    PhonePeCallbackSerializer,
    ProductSerializer,
    RazorpayOrderRequestSerializer,
    StatusUpdateSerializer,
    TrackingFixSerializer,
    checkout_result_payload,
)

logger = logging.getLogger(__name__)


def error_response(e: Exception) -> Response:
    """
    Map domain errors to HTTP responses. Anything unexpected propagates.
    """
    logger.info(f"Request rejected: {type(e).__name__}: {e}")
    if isinstance(e, ServiceAreaViolation):
        return Response({
            "error": str(e),
            "violations": [
                {"vendor_id": v.vendor_id, "distance_km": round(v.distance_km, 2), "radius_km": v.radius_km}
                for v in e.violations
            ],
        }, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    if isinstance(e, OrderNotFound):
        return Response({"error": str(e)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(e, TransitionError):
        return Response({"error": str(e)}, status=status.HTTP_409_CONFLICT)
    if isinstance(e, PaymentError):
        return Response({"error": str(e), "vendor_id": e.vendor_id}, status=status.HTTP_502_BAD_GATEWAY)
    if isinstance(e, (InvalidCheckoutState, AssignmentError, CODCollectionError)):
        return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
    raise e


class IsVendorOwnerOrReadOnly(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.vendor == request.user


class ProductViewSet(viewsets.ModelViewSet):
    """
    - Public: List/Retrieve
    - Vendor admin: Create/Update/Delete their own products
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly, IsVendorOwnerOrReadOnly]

    def perform_create(self, serializer):
        serializer.save(vendor=self.request.user)


class AddressViewSet(viewsets.ModelViewSet):
    serializer_class = AddressSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Address.objects.filter(customer=self.request.user)

    def perform_create(self, serializer):
        serializer.save(customer=self.request.user)


class CheckoutViewSet(viewsets.ViewSet):
    """
    Multi-vendor checkout for the signed-in customer's cart.
    - POST /checkout/                  run a checkout pass
    - POST /checkout/razorpay-order/   open a Razorpay order for one vendor's share
    - POST /checkout/phonepe-callback/ resume a pass after the PhonePe redirect
    """
    permission_classes = [permissions.IsAuthenticated]

    def create(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        checkout_request = serializer.to_checkout_request(str(request.user.pk), services.checkout_callback_url())
        orchestrator = services.build_orchestrator(serializer.confirmations())
        try:
            result = orchestrator.checkout(checkout_request)
        except (InvalidCheckoutState, ServiceAreaViolation) as e:
            return error_response(e)

        http_status = status.HTTP_201_CREATED if result.created_orders else status.HTTP_200_OK
        return Response(checkout_result_payload(result), status=http_status)

    @action(detail=False, methods=['post'], url_path='razorpay-order')
    def razorpay_order(self, request):
        serializer = RazorpayOrderRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            gateway_order = services.open_razorpay_order(
                str(request.user.pk),
                data['vendor_id'],
                address_id=data.get('address_id'),
                delivery_method=DeliveryMethod(data['delivery_method']),
                same_day=data['same_day'],
            )
        except (InvalidCheckoutState, PaymentError) as e:
            return error_response(e)

        return Response({
            "razorpay_order_id": gateway_order.order_id,
            "key_id": gateway_order.key_id,
            "amount": gateway_order.amount_minor,
            "currency": gateway_order.currency,
        })

    @action(detail=False, methods=['post'], url_path='phonepe-callback')
    def phonepe_callback(self, request):
        serializer = PhonePeCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session_id = str(serializer.validated_data['session_id'])

        if not CheckoutSession.objects.filter(pk=session_id, customer=request.user).exists():
            return Response({"error": "Checkout session not found"}, status=status.HTTP_404_NOT_FOUND)

        orchestrator = services.build_orchestrator()
        try:
            result = orchestrator.resume_checkout(session_id, serializer.validated_data['merchant_transaction_id'])
        except (InvalidCheckoutState, PaymentError) as e:
            return error_response(e)
        return Response(checkout_result_payload(result))


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Order lookups and lifecycle actions.
    Restricts querysets based on user role (Customer vs Vendor vs Delivery partner).
    """
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        """
        Filter orders by role:
        - Customer: See only their own orders
        - Vendor admin: See orders placed with their store
        - Delivery partner: See orders assigned to them
        """
        user = self.request.user
        orders = Order.objects.prefetch_related('items')
        if user.role == User.Roles.CUSTOMER:
            return orders.filter(customer=user)
        elif user.role == User.Roles.VENDOR_ADMIN:
            return orders.filter(vendor=user)
        elif user.role == User.Roles.DELIVERY_PARTNER:
            return orders.filter(delivery_partner__user=user)
        elif user.role == User.Roles.SUPER_ADMIN:
            return orders
        return Order.objects.none()

    def _partner_id(self):
        partner = DjangoPartnerRoster().get_by_user(str(self.request.user.pk))
        return partner.id if partner else None

    def _actor(self, order):
        """
        (actor, partner_id) for the signed-in user on this order, or None.
        """
        user = self.request.user
        if user.role == User.Roles.DELIVERY_PARTNER:
            partner_id = self._partner_id()
            return (Actor.DELIVERY_PARTNER, partner_id) if partner_id else None
        if order.vendor_id == user.pk or user.role == User.Roles.SUPER_ADMIN:
            return (Actor.VENDOR_ADMIN, None)
        return None

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        order = self.get_object()
        acting = self._actor(order)
        if acting is None:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)
        actor, partner_id = acting

        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tracking_info = None
        if actor == Actor.VENDOR_ADMIN:
            tracking_info = TrackingInfo(
                courier_service=data.get('courier_service'),
                tracking_number=data.get('tracking_number'),
                courier_tracking_url=data.get('courier_tracking_url'),
                estimated_delivery_date=data.get('estimated_delivery_date'),
            )

        try:
            updated = services.build_fulfillment().update_order_status(
                str(order.pk),
                OrderStatus(data['status']),
                actor=actor,
                partner_id=partner_id,
                note=data.get('note'),
                tracking_info=tracking_info,
            )
        except (TransitionError, OrderNotFound) as e:
            return error_response(e)
        return Response({"status": updated.status.value, "order_number": updated.order_number})

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """
        Vendor admin action to hand an order to one of their delivery partners.
        """
        order = self.get_object()
        if order.vendor_id != request.user.pk:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)

        serializer = AssignPartnerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            updated = services.build_fulfillment().assign_delivery_partner(
                str(order.pk), serializer.validated_data['partner_id']
            )
        except (AssignmentError, OrderNotFound) as e:
            return error_response(e)
        return Response({"delivery_partner": updated.delivery_partner_id, "order_number": updated.order_number})

    @action(detail=True, methods=['get'])
    def partners(self, request, pk=None):
        """
        Delivery partners the vendor admin can assign this order to.
        """
        order = self.get_object()
        if order.vendor_id != request.user.pk:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)

        partners = services.build_fulfillment().assignable_partners(str(order.pk))
        return Response(PartnerSummarySerializer(partners, many=True).data)

    @action(detail=True, methods=['get', 'post'])
    def track(self, request, pk=None):
        """
        GET: the recorded path. POST: one GPS fix from the assigned partner.
        """
        order = self.get_object()
        if request.method == 'GET':
            points = order.tracking_points.all()
            return Response(DeliveryTrackingSerializer(points, many=True).data)

        partner_id = self._partner_id()
        if partner_id is None:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)

        serializer = TrackingFixSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        fix = GpsFix(lat=data['latitude'], lon=data['longitude'], recorded_at=data.get('recorded_at'))

        registry = services.tracking_registry()
        channel = registry.get(str(order.pk))
        if channel is not None and channel.partner_id == partner_id:
            result = channel.push(fix)
        else:
            # Channel may have been opened by another worker process
            result = registry.ingest.ingest_fix(str(order.pk), partner_id, fix.lat, fix.lon, fix.recorded_at)
        return Response({"result": result.value})

    @action(detail=True, methods=['post'], url_path='collect-cod')
    def collect_cod(self, request, pk=None):
        order = self.get_object()
        acting = self._actor(order)
        if acting is None:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)
        actor, partner_id = acting
        if actor == Actor.DELIVERY_PARTNER and str(order.delivery_partner_id) != partner_id:
            return Response({"error": "Not authorized"}, status=status.HTTP_403_FORBIDDEN)

        serializer = CollectCODSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            updated = services.build_cod_reconciler().collect_cod(
                str(order.pk),
                serializer.validated_data['amount_collected'],
                actor=actor,
                note=serializer.validated_data.get('note'),
            )
        except (CODCollectionError, OrderNotFound) as e:
            return error_response(e)
        return Response({
            "payment_status": updated.payment_status.value,
            "payment_id": updated.payment_id,
            "collected_amount": str(updated.collected_amount),
        })

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        order = self.get_object()
        return Response(OrderStatusHistorySerializer(order.status_history.all(), many=True).data)

    @action(detail=False, methods=['get'], url_path='partner-dashboard')
    def partner_dashboard(self, request):
        """
        Delivery partner home screen: active orders and today's delivered count.
        """
        partner_id = self._partner_id()
        if partner_id is None:
            return Response({"error": "Not a delivery partner"}, status=status.HTTP_403_FORBIDDEN)

        fulfillment = services.build_fulfillment()
        active = fulfillment.partner_active_orders(partner_id)
        rows = Order.objects.filter(pk__in=[o.id for o in active]).prefetch_related('items')
        return Response({
            "active_orders": OrderSerializer(rows, many=True).data,
            "delivered_today": fulfillment.partner_delivered_today(partner_id),
        })
