from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..services import StatsService
from ..serializers import StatsSerializer
from .common import server_error_response


@api_view(['GET'])
def stats_overview(request):
    """
    GET /statistic - Статистика назначений
    """
    try:
        stats = StatsService.get_review_stats()
        serializer = StatsSerializer(stats)
        return Response(serializer.data)

    except Exception:
        return server_error_response('stats_overview')
