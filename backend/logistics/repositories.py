"""
Purpose: ORM-backed versions of the stores the domain services talk to.
What it does:
Each class exposes the same method names as its in-memory counterpart
(checkout/stores.py, checkout/session.py, orders/store.py, drivers/selection.py)
and converts between Django rows and domain dataclasses.

Rule: No business rules here. Conversion and persistence only.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.db.models.functions import Greatest
from django.utils import timezone

from checkout.models import (
    Address as AddressRecord,
    CartLine,
    DeliveryMethod,
    ShopType,
    VendorSettings as VendorSettingsRecord,
)
from checkout.session import CheckoutSession as CheckoutSessionRecord
from checkout.session import session_from_json, session_to_json
from checkout.stores import checked_settings
from drivers.models import DeliveryPartner as DeliveryPartnerRecord
from orders.models import (
    OrderLineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentTransaction as PaymentTransactionRecord,
    StatusHistoryEntry,
    TrackingPoint,
    VendorOrder,
)
from orders.store import OrderWriteError
from routing.geofence import ServiceArea

from . import models


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or timezone.is_aware(value):
        return value
    return timezone.make_aware(value)


# --- Collaborator stores ---

class DjangoCartStore:

    def lines(self, customer_id: str) -> List[CartLine]:
        items = models.CartItem.objects.filter(customer_id=customer_id).select_related('product')
        return [
            CartLine(
                product_id=str(item.product_id),
                vendor_id=str(item.product.vendor_id),
                unit_price=item.product.price,
                quantity=item.quantity,
                product_name=item.product.name,
                product_image=item.product.image_url,
                custom_weight=item.custom_weight,
            )
            for item in items
        ]

    def clear(self, customer_id: str) -> None:
        models.CartItem.objects.filter(customer_id=customer_id).delete()

    def remove_vendor_lines(self, customer_id: str, vendor_ids: Iterable[str]) -> None:
        models.CartItem.objects.filter(customer_id=customer_id, product__vendor_id__in=list(vendor_ids)).delete()


class DjangoAddressBook:

    def get(self, customer_id: str, address_id: str) -> Optional[AddressRecord]:
        row = models.Address.objects.filter(customer_id=customer_id, pk=address_id).first()
        if row is None:
            return None
        return AddressRecord(
            id=str(row.pk),
            full_name=row.full_name,
            phone=str(row.phone),
            line1=row.address_line1,
            line2=row.address_line2,
            city=row.city,
            state=row.state,
            postal_code=row.postal_code,
            location_link=row.location_link,
        )


class DjangoVendorDirectory:

    def get(self, vendor_id: str) -> Optional[VendorSettingsRecord]:
        row = models.VendorSettings.objects.filter(vendor_id=vendor_id).first()
        if row is None:
            return None

        center = None
        if row.service_area_lat is not None and row.service_area_lng is not None:
            center = (row.service_area_lat, row.service_area_lng)

        return checked_settings(VendorSettingsRecord(
            vendor_id=str(row.vendor_id),
            shipping_cost_in_zone=row.shipping_cost_within_zone,
            shipping_cost_out_of_zone=row.shipping_cost_outside_zone,
            free_delivery_above=row.free_delivery_above,
            delivery_days_in_zone=row.delivery_within_zone_days,
            delivery_days_out_of_zone=row.delivery_outside_zone_days,
            cod_enabled=row.cod_enabled,
            online_payment_enabled=row.online_payment_enabled,
            razorpay_key_id=row.razorpay_key_id,
            razorpay_key_secret=row.razorpay_key_secret,
            phonepe_enabled=row.phonepe_enabled,
            phonepe_merchant_id=row.phonepe_merchant_id,
            phonepe_salt_key=row.phonepe_salt_key,
            phonepe_salt_index=row.phonepe_salt_index or "1",
            service_area=ServiceArea(
                enabled=row.service_area_enabled,
                center=center,
                radius_km=row.service_area_radius_km or 0.0,
            ),
            self_pickup_enabled=row.self_pickup_enabled,
            shop_type=ShopType(row.shop_type),
            cutting_charges=row.cutting_charges,
            extra_delivery_charges=row.extra_delivery_charges,
            same_day_delivery_enabled=row.same_day_delivery_enabled,
            same_day_delivery_charge=row.same_day_delivery_charge,
            same_day_cutoff_time=row.same_day_cutoff_time,
        ))


class DjangoInventory:

    def decrement(self, product_id: str, quantity: int) -> int:
        models.Product.objects.filter(pk=product_id).update(
            stock_quantity=Greatest(F('stock_quantity') - quantity, 0)
        )
        remaining = models.Product.objects.filter(pk=product_id).values_list('stock_quantity', flat=True).first()
        return remaining or 0


class DjangoPartnerRoster:

    def _to_domain(self, row: models.DeliveryPartner) -> DeliveryPartnerRecord:
        return DeliveryPartnerRecord(
            id=str(row.pk),
            vendor_id=str(row.vendor_id),
            user_id=str(row.user_id),
            is_active=row.is_active,
            name=row.name or None,
            created_at=row.created_at,
        )

    def get(self, partner_id: str) -> Optional[DeliveryPartnerRecord]:
        row = models.DeliveryPartner.objects.filter(pk=partner_id).first()
        return self._to_domain(row) if row else None

    def get_by_user(self, user_id: str) -> Optional[DeliveryPartnerRecord]:
        row = models.DeliveryPartner.objects.filter(user_id=user_id, is_active=True).first()
        return self._to_domain(row) if row else None

    def for_vendor(self, vendor_id: str) -> List[DeliveryPartnerRecord]:
        rows = models.DeliveryPartner.objects.filter(vendor_id=vendor_id, is_active=True)
        return [self._to_domain(row) for row in rows]


# --- Orders ---

_ORDER_FIELDS = [
    'order_number', 'subtotal', 'shipping_cost', 'extra_charges', 'total', 'payment_id', 'collected_amount',
    'delivery_slot', 'estimated_delivery_date', 'notes', 'courier_service', 'tracking_number',
    'courier_tracking_url',
]


def order_to_domain(row: models.Order) -> VendorOrder:
    items = [
        OrderLineItem(
            product_id=str(item.product_id) if item.product_id else "",
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            product_image=item.product_image,
            custom_weight=item.custom_weight,
        )
        for item in row.items.all()
    ]
    return VendorOrder(
        id=str(row.pk),
        vendor_id=str(row.vendor_id),
        customer_id=str(row.customer_id),
        items=items,
        status=OrderStatus(row.status),
        payment_method=PaymentMethod(row.payment_method),
        payment_status=PaymentStatus(row.payment_status),
        delivery_method=DeliveryMethod(row.delivery_method),
        address_id=str(row.address_id) if row.address_id else None,
        delivery_partner_id=str(row.delivery_partner_id) if row.delivery_partner_id else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        **{name: getattr(row, name) for name in _ORDER_FIELDS},
    )


def _order_columns(order: VendorOrder) -> dict:
    columns = {name: getattr(order, name) for name in _ORDER_FIELDS}
    columns.update(
        vendor_id=order.vendor_id,
        customer_id=order.customer_id,
        address_id=order.address_id,
        delivery_partner_id=order.delivery_partner_id,
        status=order.status.value,
        payment_method=order.payment_method.value,
        payment_status=order.payment_status.value,
        delivery_method=order.delivery_method.value,
        created_at=_aware(order.created_at),
        updated_at=_aware(order.updated_at),
        shipped_at=_aware(order.shipped_at),
        delivered_at=_aware(order.delivered_at),
    )
    return columns


class DjangoOrderStore:

    def _query(self):
        return models.Order.objects.prefetch_related('items')

    def insert_order(self, order: VendorOrder) -> VendorOrder:
        try:
            with transaction.atomic():
                row = models.Order.objects.create(id=order.id, **_order_columns(order))
                models.OrderItem.objects.bulk_create([
                    models.OrderItem(
                        order=row,
                        product_id=item.product_id or None,
                        product_name=item.product_name,
                        product_image=item.product_image,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_price=item.total_price,
                        custom_weight=item.custom_weight,
                    )
                    for item in order.items
                ])
        except (IntegrityError, DatabaseError) as e:
            raise OrderWriteError(str(e)) from e
        return self.get(order.id)

    def get(self, order_id: str) -> Optional[VendorOrder]:
        row = self._query().filter(pk=order_id).first()
        return order_to_domain(row) if row else None

    def get_by_number(self, order_number: str) -> Optional[VendorOrder]:
        row = self._query().filter(order_number=order_number).first()
        return order_to_domain(row) if row else None

    def save(self, order: VendorOrder) -> VendorOrder:
        columns = _order_columns(order)
        columns.pop('created_at')
        updated = models.Order.objects.filter(pk=order.id).update(**columns)
        if not updated:
            raise OrderWriteError(f"Order {order.id} does not exist")
        return self.get(order.id)

    def orders_for_partner(self, partner_id: str, statuses: Optional[List[OrderStatus]] = None) -> List[VendorOrder]:
        rows = self._query().filter(delivery_partner_id=partner_id)
        if statuses is not None:
            rows = rows.filter(status__in=[status.value for status in statuses])
        return [order_to_domain(row) for row in rows.order_by('-created_at')]

    def count_delivered_since(self, partner_id: str, since: datetime) -> int:
        return models.Order.objects.filter(
            delivery_partner_id=partner_id,
            status=OrderStatus.DELIVERED.value,
            delivered_at__gte=_aware(since),
        ).count()

    def append_history(self, entry: StatusHistoryEntry) -> None:
        models.OrderStatusHistory.objects.create(
            order_id=entry.order_id,
            vendor_id=entry.vendor_id,
            status=entry.status.value,
            notes=entry.note,
            actor=entry.actor,
            created_at=_aware(entry.created_at),
        )

    def history(self, order_id: str) -> List[StatusHistoryEntry]:
        return [
            StatusHistoryEntry(
                order_id=str(row.order_id),
                vendor_id=str(row.vendor_id),
                status=OrderStatus(row.status),
                note=row.notes,
                actor=row.actor,
                created_at=row.created_at,
            )
            for row in models.OrderStatusHistory.objects.filter(order_id=order_id)
        ]

    def append_tracking(self, point: TrackingPoint) -> None:
        models.DeliveryTracking.objects.create(
            order_id=point.order_id,
            partner_id=point.partner_id,
            latitude=point.lat,
            longitude=point.lon,
            recorded_at=_aware(point.recorded_at),
        )

    def tracking_points(self, order_id: str) -> List[TrackingPoint]:
        return [
            TrackingPoint(
                order_id=str(row.order_id),
                partner_id=str(row.partner_id),
                lat=row.latitude,
                lon=row.longitude,
                recorded_at=row.recorded_at,
            )
            for row in models.DeliveryTracking.objects.filter(order_id=order_id)
        ]

    def record_transaction(self, tx: PaymentTransactionRecord) -> None:
        models.PaymentTransaction.objects.update_or_create(
            external_id=tx.external_id,
            defaults=dict(
                gateway=tx.gateway.value,
                gateway_payment_id=tx.gateway_payment_id,
                amount=tx.amount,
                vendor_id=tx.vendor_id,
                order_number=tx.order_number,
                order_id=tx.order_id,
                checkout_session_id=tx.checkout_session_id,
                verified=tx.verified,
                status=tx.status.value,
                created_at=_aware(tx.created_at),
            ),
        )

    def get_transaction(self, external_id: str) -> Optional[PaymentTransactionRecord]:
        row = models.PaymentTransaction.objects.filter(external_id=external_id).first()
        if row is None:
            return None
        return PaymentTransactionRecord(
            gateway=PaymentMethod(row.gateway),
            external_id=row.external_id,
            amount=row.amount,
            vendor_id=str(row.vendor_id),
            order_number=row.order_number,
            order_id=str(row.order_id) if row.order_id else None,
            checkout_session_id=str(row.checkout_session_id) if row.checkout_session_id else None,
            verified=row.verified,
            status=PaymentStatus(row.status),
            gateway_payment_id=row.gateway_payment_id,
            created_at=row.created_at,
        )

    @contextmanager
    def lock(self, key: str):
        """
        Row lock on the order for the duration of the block.
        """
        with transaction.atomic():
            models.Order.objects.select_for_update().filter(pk=key).first()
            yield


# --- Checkout sessions ---

class DjangoSessionStore:

    def save(self, session: CheckoutSessionRecord) -> None:
        session.updated_at = timezone.now()
        models.CheckoutSession.objects.update_or_create(
            id=session.id,
            defaults=dict(
                customer_id=session.customer_id,
                idempotency_key=session.request.idempotency_key,
                state=session.state.value,
                payload=session_to_json(session),
                created_at=_aware(session.created_at),
                updated_at=session.updated_at,
            ),
        )

    def get(self, session_id: str) -> Optional[CheckoutSessionRecord]:
        row = models.CheckoutSession.objects.filter(pk=session_id).first()
        return session_from_json(row.payload) if row else None

    def find_by_idempotency_key(self, customer_id: str, key: str) -> Optional[CheckoutSessionRecord]:
        row = models.CheckoutSession.objects.filter(customer_id=customer_id, idempotency_key=key).first()
        return session_from_json(row.payload) if row else None

    @contextmanager
    def lock(self, session_id: str):
        """
        Row lock on the session for the duration of the block.
        """
        with transaction.atomic():
            models.CheckoutSession.objects.select_for_update().filter(pk=session_id).first()
            yield
