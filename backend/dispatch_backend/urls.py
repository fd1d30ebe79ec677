from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # JWT tokens (the access token is also what mechanics send in mechanic_identify)
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # Mechanic APIs (profile, location, availability, nearby requests, online list)
    path('api/mechanics/', include('mechanics.urls')),

    # Service request endpoints (at /api/requests/)
    path('api/requests/', include('service_requests.urls')),
]
