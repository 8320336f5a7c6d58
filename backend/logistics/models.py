import uuid

from django.conf import settings
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

from checkout.models import DeliveryMethod, ShopType
from checkout.session import SessionState
from orders.models import OrderStatus, PaymentMethod, PaymentStatus


def _choices(enum_cls):
    return [(member.value, member.value.replace("_", " ").title()) for member in enum_cls]


class VendorSettings(models.Model):
    """
    One vendor's fulfillment configuration (shipping, payments, geofence, shop type).
    Read-only during checkout.
    """
    vendor = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='vendor_settings')

    # Shipping
    shipping_cost_within_zone = models.DecimalField(max_digits=10, decimal_places=2, default=40)
    shipping_cost_outside_zone = models.DecimalField(max_digits=10, decimal_places=2, default=80)
    free_delivery_above = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    delivery_within_zone_days = models.PositiveIntegerField(blank=True, null=True)
    delivery_outside_zone_days = models.PositiveIntegerField(blank=True, null=True)

    # Payments
    cod_enabled = models.BooleanField(default=True)
    online_payment_enabled = models.BooleanField(default=False)
    razorpay_key_id = models.CharField(max_length=255, blank=True, null=True)
    razorpay_key_secret = models.CharField(max_length=255, blank=True, null=True)
    phonepe_enabled = models.BooleanField(default=False)
    phonepe_merchant_id = models.CharField(max_length=255, blank=True, null=True)
    phonepe_salt_key = models.CharField(max_length=255, blank=True, null=True)
    phonepe_salt_index = models.CharField(max_length=10, default="1")

    # Service area (geofence around the store)
    service_area_enabled = models.BooleanField(default=False)
    service_area_lat = models.FloatField(blank=True, null=True)
    service_area_lng = models.FloatField(blank=True, null=True)
    service_area_radius_km = models.FloatField(blank=True, null=True)
    self_pickup_enabled = models.BooleanField(default=False)

    # Extra per-order charges
    shop_type = models.CharField(max_length=20, choices=_choices(ShopType), default=ShopType.GENERAL.value)
    cutting_charges = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    extra_delivery_charges = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    same_day_delivery_enabled = models.BooleanField(default=False)
    same_day_delivery_charge = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    same_day_cutoff_time = models.TimeField(blank=True, null=True)

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Settings for {self.vendor}"


class Product(models.Model):
    """
    Item for sale by a vendor. Stock is reduced when an order is delivered.
    """
    vendor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    stock_quantity = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    image_url = models.URLField(blank=True, null=True)

    def __str__(self):
        return self.name


class CartItem(models.Model):
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart_items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    quantity = models.PositiveIntegerField(default=1)
    custom_weight = models.CharField(max_length=50, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']


class Address(models.Model):
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='addresses')
    full_name = models.CharField(max_length=255)
    phone = PhoneNumberField(region="IN")
    address_line1 = models.CharField(max_length=255)
    address_line2 = models.CharField(max_length=255, blank=True, null=True)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=10)
    # Free-text map link; may not contain parseable coordinates
    location_link = models.TextField(blank=True, null=True)
    is_default = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.full_name}, {self.city}"


class DeliveryPartner(models.Model):
    """
    A courier account scoped to one vendor.
    """
    vendor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='delivery_partners')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='partner_accounts')
    name = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name or f"Partner {self.pk}"


class Order(models.Model):
    """
    One vendor's slice of a checkout.
    Tracks lifecycle: pending -> ... -> out_for_delivery -> delivered (or cancelled).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=40, unique=True)

    # Relationships
    vendor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='vendor_orders')
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')
    address = models.ForeignKey(Address, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    # Partner is assigned by the vendor after the order is placed
    delivery_partner = models.ForeignKey(DeliveryPartner, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    subtotal = models.DecimalField(max_digits=10, decimal_places=2)
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    extra_charges = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2)

    status = models.CharField(max_length=20, choices=_choices(OrderStatus), default=OrderStatus.PENDING.value)
    payment_method = models.CharField(max_length=20, choices=_choices(PaymentMethod), default=PaymentMethod.COD.value)
    payment_status = models.CharField(max_length=20, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value)
    payment_id = models.CharField(max_length=100, blank=True, null=True)
    collected_amount = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)

    delivery_method = models.CharField(max_length=20, choices=_choices(DeliveryMethod), default=DeliveryMethod.DELIVERY.value)
    delivery_slot = models.CharField(max_length=50, blank=True, null=True)
    estimated_delivery_date = models.DateField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    courier_service = models.CharField(max_length=100, blank=True, null=True)
    tracking_number = models.CharField(max_length=100, blank=True, null=True)
    courier_tracking_url = models.URLField(blank=True, null=True)

    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()
    shipped_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Order #{self.order_number} - {self.status}"


class OrderItem(models.Model):
    """
    Snapshot of a cart line at order time. Never updated from the product afterwards.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='order_items')
    product_name = models.CharField(max_length=255)
    product_image = models.URLField(blank=True, null=True)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    custom_weight = models.CharField(max_length=50, blank=True, null=True)


class OrderStatusHistory(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    vendor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='+')
    status = models.CharField(max_length=20, choices=_choices(OrderStatus))
    notes = models.TextField(blank=True, null=True)
    actor = models.CharField(max_length=30, blank=True, null=True)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ['created_at', 'id']


class DeliveryTracking(models.Model):
    """
    Append-only GPS fixes for an order while it is out for delivery.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='tracking_points')
    partner = models.ForeignKey(DeliveryPartner, on_delete=models.CASCADE, related_name='tracking_points')
    latitude = models.FloatField()
    longitude = models.FloatField()
    recorded_at = models.DateTimeField()

    class Meta:
        ordering = ['recorded_at', 'id']


class PaymentTransaction(models.Model):
    gateway = models.CharField(max_length=20, choices=_choices(PaymentMethod))
    # Razorpay order id or PhonePe merchant transaction id
    external_id = models.CharField(max_length=100, unique=True)
    gateway_payment_id = models.CharField(max_length=100, blank=True, null=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    vendor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='+')
    order_number = models.CharField(max_length=40)
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    checkout_session_id = models.UUIDField(blank=True, null=True)
    verified = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value)
    created_at = models.DateTimeField()


class CheckoutSession(models.Model):
    """
    Persisted checkout pass so a redirect (or a crash) can be resumed, and a
    repeated submission with the same idempotency key replayed.
    """
    id = models.UUIDField(primary_key=True, editable=False)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='checkout_sessions')
    idempotency_key = models.CharField(max_length=100, blank=True, null=True)
    state = models.CharField(max_length=20, choices=_choices(SessionState))
    # Serialized checkout.session.CheckoutSession
    payload = models.JSONField()
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['customer', 'idempotency_key'], name='unique_checkout_idempotency_key'),
        ]
