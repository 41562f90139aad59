from unittest.mock import patch

from django.test import TestCase
from reviews.errors import ErrorCode
from reviews.models import Team, User, PullRequest
from reviews.selector import ReviewerSelector
from reviews.services import PullRequestService, TeamService
from reviews.tests.utils import ScriptedRandom


class SafeReassignOpenPRsTest(TestCase):
    def setUp(self):
        self.team = Team.objects.create(name="backend")
        self.u1 = User.objects.create(id="u1", username="Author", team=self.team)
        self.u2 = User.objects.create(id="u2", username="Bob", team=self.team)
        self.u3 = User.objects.create(id="u3", username="Charlie", team=self.team)

        selector_patch = patch.object(PullRequestService, 'selector', ReviewerSelector(rng=ScriptedRandom()))
        selector_patch.start()
        self.addCleanup(selector_patch.stop)

    def _pr(self, pr_id, reviewers, status=PullRequest.Status.OPEN):
        pr = PullRequest.objects.create(id=pr_id, name=pr_id, author=self.u1, status=status)
        pr.reviewers.add(*reviewers)
        return pr

    def test_deactivated_reviewer_replaced(self):
        """u2 деактивирован, u3 активен и свободен - u2 заменяется на u3"""
        pr = self._pr("pr-1", [self.u2])

        TeamService.bulk_deactivate_team_members("backend", ["u2"])
        report = PullRequestService.safe_reassign_open_prs(["u2"])

        self.assertEqual(report.reassigned_count, 1)
        self.assertEqual(report.failed, [])
        outcome = report.outcomes[0]
        self.assertEqual((outcome.pull_request_id, outcome.old_reviewer_id, outcome.new_reviewer_id),
                         ("pr-1", "u2", "u3"))
        self.assertEqual(pr.reviewer_ids, ["u3"])

    def test_no_candidate_keeps_inactive_reviewer(self):
        """Без кандидатов PR остается со старым ревьювером, ошибка попадает в отчет"""
        pr = self._pr("pr-1", [self.u2, self.u3])

        TeamService.bulk_deactivate_team_members("backend", ["u2"])
        report = PullRequestService.safe_reassign_open_prs(["u2"])

        self.assertEqual(report.reassigned_count, 0)
        self.assertEqual(len(report.failed), 1)
        self.assertEqual(report.failed[0].error.code, ErrorCode.NO_CANDIDATE)
        self.assertEqual(pr.reviewer_ids, ["u2", "u3"])

    def test_merged_prs_untouched(self):
        """Замороженные MERGED PR не переназначаются"""
        merged = self._pr("pr-merged", [self.u2], status=PullRequest.Status.MERGED)

        TeamService.bulk_deactivate_team_members("backend", ["u2"])
        report = PullRequestService.safe_reassign_open_prs(["u2"])

        self.assertEqual(report.outcomes, [])
        self.assertEqual(merged.reviewer_ids, ["u2"])

    def test_active_users_in_list_are_ignored(self):
        """Пары берутся только для реально неактивных ревьюверов"""
        pr = self._pr("pr-1", [self.u2])

        report = PullRequestService.safe_reassign_open_prs(["u2"])

        self.assertEqual(report.outcomes, [])
        self.assertEqual(pr.reviewer_ids, ["u2"])

    def test_partial_success_never_shrinks_sets(self):
        """Каждая пара обрабатывается отдельно, наборы ревьюверов не уменьшаются"""
        u4 = User.objects.create(id="u4", username="Dave", team=self.team)
        pr1 = self._pr("pr-1", [self.u2])
        pr2 = self._pr("pr-2", [self.u2, self.u3])

        TeamService.bulk_deactivate_team_members("backend", ["u2", "u3"])
        report = PullRequestService.safe_reassign_open_prs(["u2", "u3"])

        # pr-1: u2 -> u4; pr-2: u2 -> u4, затем для u3 кандидатов нет
        self.assertEqual(report.reassigned_count, 2)
        self.assertEqual(len(report.outcomes), 3)
        self.assertEqual([(o.pull_request_id, o.old_reviewer_id) for o in report.failed], [("pr-2", "u3")])
        self.assertEqual(pr1.reviewer_ids, [u4.id])
        self.assertEqual(pr2.reviewer_ids, ["u3", "u4"])

    def test_empty_input(self):
        report = PullRequestService.safe_reassign_open_prs([])

        self.assertEqual(report.reassigned_count, 0)
        self.assertEqual(report.outcomes, [])
