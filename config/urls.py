from django.conf import settings
from django.contrib import admin
from django.contrib.staticfiles.urls import staticfiles_urlpatterns
from django.urls import include
from django.urls import path
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from drf_spectacular.views import SpectacularAPIView
from drf_spectacular.views import SpectacularSwaggerView
from rest_framework_simplejwt import views as jwt_views

from .health import health as health_view

JWT_TAG = extend_schema_view(post=extend_schema(tags=["JWT Authentication"]))


@JWT_TAG
class JWTCreateView(jwt_views.TokenObtainPairView):
    pass


@JWT_TAG
class JWTRefreshView(jwt_views.TokenRefreshView):
    pass


@JWT_TAG
class JWTVerifyView(jwt_views.TokenVerifyView):
    pass


urlpatterns = [
    path(settings.ADMIN_URL, admin.site.urls),
    path("health/", health_view, name="health"),
    path("api/v1/", include(("config.api_router", "api"), namespace="api_v1")),
    path("api/v1/schema/", SpectacularAPIView.as_view(), name="api-schema-v1"),
    path(
        "api/v1/docs/",
        SpectacularSwaggerView.as_view(url_name="api-schema-v1"),
        name="api-docs-v1",
    ),
    # Access tokens double as the Socket.IO `token` for authenticated relays
    path("api/v1/auth/jwt/create/", JWTCreateView.as_view(), name="jwt-create"),
    path("api/v1/auth/jwt/refresh/", JWTRefreshView.as_view(), name="jwt-refresh"),
    path("api/v1/auth/jwt/verify/", JWTVerifyView.as_view(), name="jwt-verify"),
]

if settings.DEBUG:
    urlpatterns += staticfiles_urlpatterns()
