from rest_framework import serializers

from checkout.models import CheckoutRequest, DeliveryMethod, PaymentChoice
from orders.models import OrderStatus
from payments.gateway import PaymentConfirmation

from .models import (
    Address,
    DeliveryTracking,
    Order,
    OrderItem,
    OrderStatusHistory,
    Product,
)


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = '__all__'
        read_only_fields = ['vendor']


class AddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = Address
        fields = '__all__'
        read_only_fields = ['customer']


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        exclude = ['order']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = '__all__'
        # Orders are only ever written by checkout and the lifecycle actions
        read_only_fields = [f.name for f in Order._meta.fields]


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ['status', 'notes', 'actor', 'created_at']


class DeliveryTrackingSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryTracking
        fields = ['partner', 'latitude', 'longitude', 'recorded_at']


# --- Action payloads ---

class RazorpayConfirmationSerializer(serializers.Serializer):
    vendor_id = serializers.CharField()
    razorpay_order_id = serializers.CharField()
    razorpay_payment_id = serializers.CharField()
    razorpay_signature = serializers.CharField()


class CheckoutRequestSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=[c.value for c in PaymentChoice], default=PaymentChoice.COD.value)
    delivery_method = serializers.ChoiceField(choices=[m.value for m in DeliveryMethod],
                                              default=DeliveryMethod.DELIVERY.value)
    address_id = serializers.CharField(required=False, allow_null=True)
    latitude = serializers.FloatField(required=False, allow_null=True, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, allow_null=True, min_value=-180, max_value=180)
    idempotency_key = serializers.CharField(required=False, allow_null=True, max_length=100)
    same_day = serializers.BooleanField(default=False)
    delivery_slot = serializers.CharField(required=False, allow_null=True, max_length=50)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    razorpay_payments = RazorpayConfirmationSerializer(many=True, required=False)

    def validate(self, attrs):
        if (attrs.get('latitude') is None) != (attrs.get('longitude') is None):
            raise serializers.ValidationError("latitude and longitude must be sent together")
        return attrs

    def to_checkout_request(self, customer_id: str, callback_url=None) -> CheckoutRequest:
        data = self.validated_data
        coordinate = None
        if data.get('latitude') is not None:
            coordinate = (data['latitude'], data['longitude'])
        return CheckoutRequest(
            customer_id=customer_id,
            payment_method=PaymentChoice(data['payment_method']),
            delivery_method=DeliveryMethod(data['delivery_method']),
            address_id=data.get('address_id'),
            coordinate=coordinate,
            callback_url=callback_url,
            idempotency_key=data.get('idempotency_key'),
            same_day=data['same_day'],
            delivery_slot=data.get('delivery_slot'),
            notes=data.get('notes'),
        )

    def confirmations(self):
        return {
            item['vendor_id']: PaymentConfirmation(
                order_id=item['razorpay_order_id'],
                payment_id=item['razorpay_payment_id'],
                signature=item['razorpay_signature'],
            )
            for item in self.validated_data.get('razorpay_payments', [])
        }


class RazorpayOrderRequestSerializer(serializers.Serializer):
    vendor_id = serializers.CharField()
    address_id = serializers.CharField(required=False, allow_null=True)
    delivery_method = serializers.ChoiceField(choices=[m.value for m in DeliveryMethod],
                                              default=DeliveryMethod.DELIVERY.value)
    same_day = serializers.BooleanField(default=False)


class PhonePeCallbackSerializer(serializers.Serializer):
    session_id = serializers.UUIDField()
    merchant_transaction_id = serializers.CharField()


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s.value for s in OrderStatus])
    note = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    courier_service = serializers.CharField(required=False, allow_null=True, max_length=100)
    tracking_number = serializers.CharField(required=False, allow_null=True, max_length=100)
    courier_tracking_url = serializers.URLField(required=False, allow_null=True)
    estimated_delivery_date = serializers.DateField(required=False, allow_null=True)


class AssignPartnerSerializer(serializers.Serializer):
    partner_id = serializers.CharField()


class TrackingFixSerializer(serializers.Serializer):
    # Range checks happen in the ingest; out-of-range fixes are dropped, not rejected
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    recorded_at = serializers.DateTimeField(required=False, allow_null=True)


class CollectCODSerializer(serializers.Serializer):
    amount_collected = serializers.DecimalField(max_digits=10, decimal_places=2)
    note = serializers.CharField(required=False, allow_null=True, allow_blank=True)


def checkout_result_payload(result) -> dict:
    """
    Response body for a checkout pass (engine.CheckoutResult).
    """
    orders = Order.objects.filter(order_number__in=result.created_order_numbers).prefetch_related('items')
    payload = {
        'session_id': result.session_id,
        'state': result.state.value,
        'orders': OrderSerializer(orders, many=True).data,
        'failures': [
            {
                'vendor_id': failure.vendor_id,
                'error': failure.error,
                'reason': failure.reason,
                'order_number': failure.order_number,
            }
            for failure in result.failures
        ],
        'redirect': None,
    }
    if result.redirect is not None:
        payload['redirect'] = {
            'vendor_id': result.redirect.vendor_id,
            'order_number': result.redirect.order_number,
            'redirect_url': result.redirect.redirect_url,
            'merchant_transaction_id': result.redirect.merchant_transaction_id,
        }
    return payload


class PartnerSummarySerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField(allow_null=True)
    phone = serializers.CharField(allow_null=True)
