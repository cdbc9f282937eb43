"""
URL configuration for backend project.

Every discount endpoint is scoped to a store through its subdomain:
    stores/<subdomain>/discounts/...
"""
from django.contrib import admin
from django.urls import path, include

from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api-auth/', include('rest_framework.urls')),
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('stores/<slug:subdomain>/discounts/', include('discounts.urls')),
]
