from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..errors import ServiceError
from ..services import UserService
from ..serializers import UserSerializer, PullRequestShortSerializer
from .common import service_error_response, validation_error_response, server_error_response


@api_view(['POST'])
def user_set_active(request):
    """POST /users/setIsActive - Установить флаг активности пользователя"""
    try:
        user_id = request.data.get('user_id')
        is_active = request.data.get('is_active')

        if user_id is None or is_active is None:
            return validation_error_response('user_id and is_active are required')

        if not isinstance(is_active, bool):
            return validation_error_response('is_active must be a boolean')

        user = UserService.set_user_active_status(user_id, is_active)
        serializer = UserSerializer(user)

        return Response({
            'user': serializer.data
        })

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('user_set_active')


@api_view(['GET'])
def users_get_review(request):
    """GET /users/getReview - Получить PR'ы, где пользователь назначен ревьювером"""
    try:
        user_id = request.query_params.get('user_id')

        if not user_id:
            return validation_error_response('user_id parameter is required')

        assigned_prs = UserService.get_user_review_assignments(user_id)
        serializer = PullRequestShortSerializer(assigned_prs, many=True)

        return Response({
            'user_id': user_id,
            'pull_requests': serializer.data
        })

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('users_get_review')
