from rest_framework import serializers
from .models import Team, User, PullRequest


class TeamMemberSerializer(serializers.ModelSerializer):
    user_id = serializers.CharField(source='id')
    username = serializers.CharField()
    is_active = serializers.BooleanField()

    class Meta:
        model = User
        fields = ['user_id', 'username', 'is_active']


class TeamSerializer(serializers.ModelSerializer):
    team_name = serializers.CharField(source='name')
    members = TeamMemberSerializer(many=True, source='members.all')

    class Meta:
        model = Team
        fields = ['team_name', 'members']


class UserSerializer(serializers.ModelSerializer):
    user_id = serializers.CharField(source='id')
    username = serializers.CharField()
    team_name = serializers.CharField(source='team.name', allow_null=True, default=None)
    is_active = serializers.BooleanField()

    class Meta:
        model = User
        fields = ['user_id', 'username', 'team_name', 'is_active']


class PullRequestSerializer(serializers.ModelSerializer):
    pull_request_id = serializers.CharField(source='id')
    pull_request_name = serializers.CharField(source='name')
    author_id = serializers.CharField()
    status = serializers.CharField()
    assigned_reviewers = serializers.ListField(source='reviewer_ids', child=serializers.CharField())
    createdAt = serializers.DateTimeField(source='created_at', format='%Y-%m-%dT%H:%M:%SZ')
    mergedAt = serializers.DateTimeField(source='merged_at', format='%Y-%m-%dT%H:%M:%SZ', allow_null=True)

    class Meta:
        model = PullRequest
        fields = [
            'pull_request_id', 'pull_request_name', 'author_id',
            'status', 'assigned_reviewers', 'createdAt', 'mergedAt'
        ]


class PullRequestShortSerializer(serializers.ModelSerializer):
    pull_request_id = serializers.CharField(source='id')
    pull_request_name = serializers.CharField(source='name')
    author_id = serializers.CharField()
    status = serializers.CharField()

    class Meta:
        model = PullRequest
        fields = ['pull_request_id', 'pull_request_name', 'author_id', 'status']


class TeamMemberInputSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=50)
    username = serializers.CharField(max_length=100)
    is_active = serializers.BooleanField()


class TeamInputSerializer(serializers.Serializer):
    team_name = serializers.CharField(max_length=100)
    members = TeamMemberInputSerializer(many=True)


class BulkDeactivateInputSerializer(serializers.Serializer):
    team_name = serializers.CharField(max_length=100)
    user_ids = serializers.ListField(child=serializers.CharField(max_length=50))


class ReassignmentOutcomeSerializer(serializers.Serializer):
    pull_request_id = serializers.CharField()
    old_user_id = serializers.CharField(source='old_reviewer_id')
    code = serializers.CharField(source='error.code.value')
    message = serializers.CharField(source='error.message')


class UserReviewStatsSerializer(serializers.Serializer):
    id = serializers.CharField()
    username = serializers.CharField()
    prs_reviewed = serializers.IntegerField()
    open_prs_reviewed = serializers.IntegerField()
    merged_prs_reviewed = serializers.IntegerField()


class PRStatsSerializer(serializers.Serializer):
    total_prs = serializers.IntegerField()
    open_prs = serializers.IntegerField()
    merged_prs = serializers.IntegerField()
    prs_with_reviewers = serializers.IntegerField()
    prs_without_reviewers = serializers.IntegerField()


class StatsSerializer(serializers.Serializer):
    user_review_stats = UserReviewStatsSerializer(many=True)
    pr_stats = PRStatsSerializer()
