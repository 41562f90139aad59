import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import IntegrityError, models, transaction
from django.db.models import Count
from django.utils import timezone

from .errors import ErrorCode, ServiceError
from .models import Team, User, PullRequest, ReviewAssignment
from .selector import ReviewerSelector

logger = logging.getLogger(__name__)


class TeamService:
    """
    Сервис для управления командами и пользователями
    """

    @classmethod
    @transaction.atomic
    def create_team_with_members(cls, team_name: str, members_data: list) -> Team:
        """
        Создает команду с пользователями.
        Существующие пользователи обновляются и переезжают в новую команду.
        """
        if Team.objects.filter(name=team_name).exists():
            raise ServiceError(ErrorCode.TEAM_EXISTS, 'team_name already exists')

        try:
            # savepoint: конкурентный запрос мог создать команду после проверки
            with transaction.atomic():
                team = Team.objects.create(name=team_name)
        except IntegrityError:
            raise ServiceError(ErrorCode.TEAM_EXISTS, 'team_name already exists')

        # Создаем/обновляем пользователей и добавляем их в команду
        for member_data in members_data:
            cls._create_or_update_user(team, member_data)

        logger.info("Team %s created with %d members", team_name, len(members_data))
        return team

    @classmethod
    def _create_or_update_user(cls, team: Team, member_data: dict) -> User:
        user_id = member_data['user_id']
        username = member_data['username']
        is_active = member_data['is_active']

        try:
            user = User.objects.select_for_update().get(id=user_id)
            if user.team_id is not None and user.team_id != team.id:
                logger.info("User %s moved from team %s to %s", user_id, user.team_id, team.name)
            user.username = username
            user.is_active = is_active
            user.team = team
            user.save()
        except User.DoesNotExist:
            user = User.objects.create(
                id=user_id,
                username=username,
                team=team,
                is_active=is_active
            )

        return user

    @classmethod
    def get_team_with_members(cls, team_name: str) -> Team:
        try:
            return Team.objects.prefetch_related(
                models.Prefetch('members', queryset=User.objects.order_by('id'))
            ).get(name=team_name)
        except Team.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"team '{team_name}' not found")

    @classmethod
    @transaction.atomic
    def bulk_deactivate_team_members(cls, team_name: str, user_ids: list) -> list:
        """
        Массовая деактивация пользователей команды.

        Несуществующие пользователи и пользователи чужих команд пропускаются.
        Открытые PR здесь не переназначаются, для этого есть
        PullRequestService.safe_reassign_open_prs.

        Returns:
            list: id реально деактивированных пользователей
        """
        try:
            team = Team.objects.get(name=team_name)
        except Team.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"team '{team_name}' not found")

        deactivated_ids = list(
            User.objects
            .select_for_update()
            .filter(team=team, id__in=list(user_ids))
            .order_by('id')
            .values_list('id', flat=True)
        )
        skipped = set(user_ids) - set(deactivated_ids)
        if skipped:
            logger.info("Bulk deactivation in %s skips unknown or foreign users: %s",
                        team_name, sorted(skipped))

        User.objects.filter(id__in=deactivated_ids).update(is_active=False, updated_at=timezone.now())

        logger.info("Deactivated %d users in team %s", len(deactivated_ids), team_name)
        return deactivated_ids


class UserService:
    """
    Сервис для управления пользователями
    """

    @classmethod
    @transaction.atomic
    def set_user_active_status(cls, user_id: str, is_active: bool) -> User:
        try:
            user = User.objects.select_for_update().get(id=user_id)
        except User.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"user '{user_id}' not found")

        user.is_active = is_active
        user.save()
        return user

    @classmethod
    def get_user_review_assignments(cls, user_id: str) -> list:
        if not User.objects.filter(id=user_id).exists():
            raise ServiceError(ErrorCode.NOT_FOUND, f"user '{user_id}' not found")

        assigned_prs = (
            PullRequest.objects
            .filter(assignments__reviewer_id=user_id)
            .select_related('author')
            .order_by('-created_at', 'id')
        )
        return list(assigned_prs)


@dataclass(frozen=True)
class ReassignmentOutcome:
    """Результат попытки заменить одного ревьювера одного PR"""
    pull_request_id: str
    old_reviewer_id: str
    new_reviewer_id: Optional[str] = None
    error: Optional[ServiceError] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ReassignmentReport:
    outcomes: list = field(default_factory=list)

    @property
    def reassigned_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> list:
        return [outcome for outcome in self.outcomes if not outcome.success]


class PullRequestService:
    """
    Сервис для управления Pull Request'ами
    """

    selector = ReviewerSelector()

    @classmethod
    @transaction.atomic
    def create_pull_request(cls, pr_id: str, pr_name: str, author_id: str) -> PullRequest:
        if PullRequest.objects.filter(id=pr_id).exists():
            raise ServiceError(ErrorCode.PR_EXISTS, 'PR id already exists')

        try:
            author = User.objects.select_related('team').get(id=author_id)
        except User.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"author '{author_id}' not found")

        if not author.team:
            raise ServiceError(ErrorCode.NOT_FOUND, f"author '{author_id}' has no team")

        try:
            with transaction.atomic():
                pr = PullRequest.objects.create(
                    id=pr_id,
                    name=pr_name,
                    author=author
                )
        except IntegrityError:
            raise ServiceError(ErrorCode.PR_EXISTS, 'PR id already exists')

        reviewer_ids = cls.selector.select_initial_reviewers(author.team, author.id)
        ReviewAssignment.objects.bulk_create(
            ReviewAssignment(pull_request=pr, reviewer_id=reviewer_id) for reviewer_id in reviewer_ids
        )

        logger.info("PR %s created by %s, reviewers: %s", pr_id, author_id, sorted(reviewer_ids))
        return pr

    @classmethod
    def get_pull_request(cls, pr_id: str) -> PullRequest:
        try:
            return PullRequest.objects.select_related('author').get(id=pr_id)
        except PullRequest.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"PR '{pr_id}' not found")

    @classmethod
    @transaction.atomic
    def merge_pull_request(cls, pr_id: str) -> PullRequest:
        try:
            pr = PullRequest.objects.select_for_update().get(id=pr_id)
        except PullRequest.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"PR '{pr_id}' not found")

        # Повторный merge ничего не меняет
        if pr.status != PullRequest.Status.MERGED:
            pr.status = PullRequest.Status.MERGED
            pr.merged_at = timezone.now()
            pr.save(update_fields=['status', 'merged_at'])
            logger.info("PR %s merged", pr_id)

        return pr

    @classmethod
    @transaction.atomic
    def reassign_reviewer(cls, pr_id: str, old_user_id: str) -> tuple:
        """
        Заменяет ревьювера old_user_id случайным активным участником его команды.

        Returns:
            tuple: (PR, id нового ревьювера)
        """
        try:
            pr = PullRequest.objects.select_for_update().get(id=pr_id)
        except PullRequest.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"PR '{pr_id}' not found")

        if pr.status == PullRequest.Status.MERGED:
            raise ServiceError(ErrorCode.PR_MERGED, 'cannot reassign on merged PR')

        current_reviewer_ids = set(pr.assignments.values_list('reviewer_id', flat=True))
        if old_user_id not in current_reviewer_ids:
            raise ServiceError(ErrorCode.NOT_ASSIGNED, 'reviewer is not assigned to this PR')

        try:
            old_reviewer = User.objects.select_related('team').get(id=old_user_id)
        except User.DoesNotExist:
            raise ServiceError(ErrorCode.NOT_FOUND, f"user '{old_user_id}' not found")

        if not old_reviewer.team:
            raise ServiceError(ErrorCode.NOT_FOUND, f"user '{old_user_id}' has no team")

        exclude_ids = current_reviewer_ids | {old_user_id, pr.author_id}
        new_reviewer_id = cls.selector.select_replacement(old_reviewer.team, exclude_ids)

        # Одна строка меняется на месте, без окна с двумя или нулем назначений
        ReviewAssignment.objects.filter(
            pull_request=pr, reviewer_id=old_user_id
        ).update(reviewer_id=new_reviewer_id)

        logger.info("PR %s: reviewer %s replaced by %s", pr_id, old_user_id, new_reviewer_id)
        return pr, new_reviewer_id

    @classmethod
    def safe_reassign_open_prs(cls, deactivated_user_ids: list) -> ReassignmentReport:
        """
        Переназначает неактивных ревьюверов открытых PR.

        Каждая пара (PR, ревьювер) обрабатывается в своей транзакции.
        Доменные ошибки (обычно NO_CANDIDATE) попадают в отчет, PR остается
        со старым ревьювером.
        """
        report = ReassignmentReport()
        if not deactivated_user_ids:
            return report

        pairs = (
            ReviewAssignment.objects
            .filter(
                pull_request__status=PullRequest.Status.OPEN,
                reviewer_id__in=list(deactivated_user_ids),
                reviewer__is_active=False,
            )
            .order_by('pull_request_id', 'reviewer_id')
            .values_list('pull_request_id', 'reviewer_id')
            .distinct()
        )

        for pr_id, old_reviewer_id in list(pairs):
            try:
                _, new_reviewer_id = cls.reassign_reviewer(pr_id, old_reviewer_id)
            except ServiceError as e:
                logger.warning("PR %s keeps inactive reviewer %s: %s %s",
                               pr_id, old_reviewer_id, e.code.value, e.message)
                report.outcomes.append(ReassignmentOutcome(pr_id, old_reviewer_id, error=e))
            else:
                report.outcomes.append(ReassignmentOutcome(pr_id, old_reviewer_id, new_reviewer_id))

        logger.info("Safe reassignment: %d of %d pairs reassigned",
                    report.reassigned_count, len(report.outcomes))
        return report


class StatsService:
    """
    Сервис для сбора статистики
    """

    @classmethod
    def get_review_stats(cls):
        """
        Returns:
            dict: Статистика по пользователям и PR
        """
        user_review_stats = (
            User.objects
            .annotate(
                prs_reviewed=Count('review_assignments'),
                open_prs_reviewed=Count(
                    'review_assignments',
                    filter=models.Q(review_assignments__pull_request__status=PullRequest.Status.OPEN)
                ),
                merged_prs_reviewed=Count(
                    'review_assignments',
                    filter=models.Q(review_assignments__pull_request__status=PullRequest.Status.MERGED)
                ),
            )
            .values('id', 'username', 'prs_reviewed', 'open_prs_reviewed', 'merged_prs_reviewed')
            .order_by('-prs_reviewed', 'username')
        )

        pr_stats = PullRequest.objects.aggregate(
            total_prs=Count('id'),
            open_prs=Count('id', filter=models.Q(status=PullRequest.Status.OPEN)),
            merged_prs=Count('id', filter=models.Q(status=PullRequest.Status.MERGED)),
        )
        pr_stats['prs_with_reviewers'] = PullRequest.objects.filter(assignments__isnull=False).distinct().count()
        pr_stats['prs_without_reviewers'] = pr_stats['total_prs'] - pr_stats['prs_with_reviewers']

        return {
            'user_review_stats': list(user_review_stats),
            'pr_stats': pr_stats,
        }
