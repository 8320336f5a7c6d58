from django.contrib.auth.models import AbstractUser
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

class User(AbstractUser):
    class Roles(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        DELIVERY_PARTNER = "DELIVERY_PARTNER", "Delivery Partner"
        VENDOR_ADMIN = "VENDOR_ADMIN", "Vendor Admin"
        SUPER_ADMIN = "SUPER_ADMIN", "Super Admin"

    # Role fields define permissions in the app
    # CUSTOMER: Can buy products from any vendor
    # DELIVERY_PARTNER: Works the orders one vendor assigns to them
    # VENDOR_ADMIN: Runs one store (settings, products, orders)
    # SUPER_ADMIN: Superuser access
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.CUSTOMER)

    # Indian mobile numbers (+91...)
    phone_number = PhoneNumberField(blank=True, null=True, unique=True, region="IN")

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
