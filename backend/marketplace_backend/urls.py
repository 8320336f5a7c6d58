from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from logistics.views import AddressViewSet, CheckoutViewSet, OrderViewSet, ProductViewSet

router = DefaultRouter()
router.register(r'products', ProductViewSet)
router.register(r'addresses', AddressViewSet, basename='address')
router.register(r'checkout', CheckoutViewSet, basename='checkout')
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include(router.urls)),
    path('api/v1/auth/', include('rest_framework.urls')),
]
