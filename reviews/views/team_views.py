from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..errors import ServiceError
from ..services import TeamService, PullRequestService
from ..serializers import (
    TeamSerializer, TeamInputSerializer, BulkDeactivateInputSerializer, ReassignmentOutcomeSerializer
)
from .common import first_error, service_error_response, validation_error_response, server_error_response


@api_view(['POST'])
def team_add(request):
    """POST /team/add - Создать команду с участниками"""
    try:
        payload = TeamInputSerializer(data=request.data)
        if not payload.is_valid():
            return validation_error_response(first_error(payload.errors))

        team_name = payload.validated_data['team_name']
        TeamService.create_team_with_members(team_name, payload.validated_data['members'])
        team = TeamService.get_team_with_members(team_name)
        serializer = TeamSerializer(team)

        return Response({
            'team': serializer.data
        }, status=status.HTTP_201_CREATED)

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('team_add')


@api_view(['GET'])
def team_get(request):
    """GET /team/get - Получить команду с участниками"""
    try:
        team_name = request.query_params.get('team_name')

        if not team_name:
            return validation_error_response('team_name parameter is required')

        team = TeamService.get_team_with_members(team_name)
        serializer = TeamSerializer(team)

        return Response(serializer.data)

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('team_get')


@api_view(['POST'])
def team_bulk_deactivate(request):
    """
    POST /team/bulkDeactivate - Деактивировать участников команды
    и переназначить их открытые PR
    """
    try:
        payload = BulkDeactivateInputSerializer(data=request.data)
        if not payload.is_valid():
            return validation_error_response(first_error(payload.errors))

        team_name = payload.validated_data['team_name']
        deactivated_ids = TeamService.bulk_deactivate_team_members(
            team_name, payload.validated_data['user_ids']
        )
        report = PullRequestService.safe_reassign_open_prs(deactivated_ids)

        return Response({
            'team_name': team_name,
            'deactivated_user_ids': deactivated_ids,
            'reassigned_prs': report.reassigned_count,
            'failed_reassignments': ReassignmentOutcomeSerializer(report.failed, many=True).data,
        })

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return server_error_response('team_bulk_deactivate')
