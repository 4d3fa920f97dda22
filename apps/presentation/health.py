import logging
from django.db import connection, DatabaseError
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema

logger = logging.getLogger('apps')


@extend_schema(
    summary='Health check',
    description='Reports API liveness and database connectivity.',
    tags=['Health'],
    responses={
        200: {
            'type': 'object',
            'properties': {
                'status': {'type': 'string', 'example': 'ok'},
                'database': {
                    'type': 'string',
                    'example': 'healthy',
                    'description': 'healthy or unhealthy'
                }
            }
        }
    },
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        db_status = "healthy"
    except DatabaseError as e:
        logger.error(f'Health check database error: {str(e)}')
        db_status = "unhealthy"

    return Response({
        "status": "ok",
        "database": db_status
    }, status=status.HTTP_200_OK)
