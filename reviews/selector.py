"""
Выбор ревьюверов для PR.

Кандидаты - активные участники команды за вычетом исключенных
идентификаторов. Выбор равновероятный, без учета нагрузки. Источник
случайности передается в конструктор, чтобы тесты могли подставить
детерминированную последовательность.
"""
import random
from typing import Optional

from django.conf import settings

from .errors import ErrorCode, ServiceError
from .models import Team, User

DEFAULT_REVIEWERS_PER_PULL_REQUEST = 2


class ReviewerSelector:

    def __init__(self, rng=None):
        self.rng = rng if rng is not None else random.Random()

    @staticmethod
    def max_reviewers() -> int:
        return getattr(settings, 'REVIEWERS_PER_PULL_REQUEST', DEFAULT_REVIEWERS_PER_PULL_REQUEST)

    @staticmethod
    def candidate_pool(team: Team, exclude_ids) -> list:
        """
        Активные участники команды, кроме exclude_ids, в порядке id
        """
        return list(
            User.objects
            .filter(team=team, is_active=True)
            .exclude(id__in=list(exclude_ids))
            .order_by('id')
            .values_list('id', flat=True)
        )

    def select_initial_reviewers(self, team: Team, author_id: str, max_count: Optional[int] = None) -> list:
        """
        Случайное подмножество из min(max_count, |пул|) ревьюверов.
        Пустой пул - не ошибка, PR может остаться без ревьюверов.
        """
        if max_count is None:
            max_count = self.max_reviewers()

        candidates = self.candidate_pool(team, {author_id})
        reviewers_count = min(max_count, len(candidates))
        if reviewers_count <= 0:
            return []

        return list(self.rng.sample(candidates, reviewers_count))

    def select_replacement(self, team: Team, exclude_ids) -> str:
        candidates = self.candidate_pool(team, exclude_ids)
        if not candidates:
            raise ServiceError(ErrorCode.NO_CANDIDATE, 'no active replacement candidate in team')

        return self.rng.choice(candidates)
