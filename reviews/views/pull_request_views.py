from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..errors import ServiceError
from ..services import PullRequestService
from ..serializers import PullRequestSerializer
from .common import service_error_response, validation_error_response, server_error_response


@api_view(['POST'])
def pullrequest_create(request):
    """POST /pullRequest/create - Создать PR и назначить ревьюверов"""
    try:
        pr_id = request.data.get('pull_request_id')
        pr_name = request.data.get('pull_request_name')
        author_id = request.data.get('author_id')

        if not all([pr_id, pr_name, author_id]):
            return validation_error_response('pull_request_id, pull_request_name, and author_id are required')

        pr = PullRequestService.create_pull_request(pr_id, pr_name, author_id)
        serializer = PullRequestSerializer(pr)

        return Response({
            'pr': serializer.data
        }, status=status.HTTP_201_CREATED)

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('pullrequest_create')


@api_view(['POST'])
def pullrequest_merge(request):
    """POST /pullRequest/merge - Пометить PR как MERGED (идемпотентно)"""
    try:
        pr_id = request.data.get('pull_request_id')

        if not pr_id:
            return validation_error_response('pull_request_id is required')

        pr = PullRequestService.merge_pull_request(pr_id)
        serializer = PullRequestSerializer(pr)

        return Response({
            'pr': serializer.data
        })

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('pullrequest_merge')


@api_view(['POST'])
def pullrequest_reassign(request):
    """POST /pullRequest/reassign - Переназначить ревьювера"""
    try:
        pr_id = request.data.get('pull_request_id')
        old_user_id = request.data.get('old_user_id')

        if not all([pr_id, old_user_id]):
            return validation_error_response('pull_request_id and old_user_id are required')

        pr, new_reviewer_id = PullRequestService.reassign_reviewer(pr_id, old_user_id)
        serializer = PullRequestSerializer(pr)

        return Response({
            'pr': serializer.data,
            'replaced_by': new_reviewer_id
        })

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('pullrequest_reassign')
