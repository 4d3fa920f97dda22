from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import EnvelopeViewSet, TokenSigningViewSet, ContractSigningViewSet, custom_obtain_auth_token

router = DefaultRouter()
router.register(r'envelopes', EnvelopeViewSet, basename='envelope')


def signing_routes(prefix, viewset, name):
    return [
        path(f'{prefix}/', viewset.as_view({'get': 'context'}), name=f'{name}-context'),
        path(f'{prefix}/viewed/', viewset.as_view({'post': 'viewed'}), name=f'{name}-viewed'),
        path(f'{prefix}/submit/', viewset.as_view({'post': 'submit'}), name=f'{name}-submit'),
        path(f'{prefix}/decline/', viewset.as_view({'post': 'decline'}), name=f'{name}-decline'),
    ]


urlpatterns = [
    path('api-token-auth/', custom_obtain_auth_token, name='api-token-auth'),
    path('', include(router.urls)),
    *signing_routes('signing/contracts/<uuid:contract_id>', ContractSigningViewSet, 'contract-signing'),
    *signing_routes('signing/<str:token>', TokenSigningViewSet, 'token-signing'),
]
