"""Management command replaying credit ledgers against stored balances."""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.management.base import BaseCommand, CommandError

from billing.models import CreditAccount
from billing.services.credit_ledger import replay_balance


class Command(BaseCommand):
    help = "Replay each user's credit ledger and report balances that do not match."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--user-id",
            dest="user_ids",
            action="append",
            help="Audit only the specified user id. Can be supplied multiple times.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of accounts to audit in this run.",
        )

    def handle(self, *args, **options) -> None:
        user_ids: Optional[Iterable[str]] = options.get("user_ids")
        limit: Optional[int] = options.get("limit")

        queryset = CreditAccount.objects.filter(user__deleted_at__isnull=True).order_by("created_at")
        if user_ids:
            queryset = queryset.filter(user_id__in=list(user_ids))
        if limit is not None:
            queryset = queryset[:limit]

        total = queryset.count()
        if total == 0:
            self.stdout.write(self.style.WARNING("No credit accounts matched the requested filters."))
            return

        inconsistent = 0
        for account in queryset:
            report = replay_balance(account.user_id)
            if report.consistent:
                continue
            inconsistent += 1
            self.stdout.write(
                f"User {report.user_id}: ledger replays to {report.replayed_balance} "
                f"but balance is {report.current_balance} "
                f"({len(report.broken_links)} broken row(s))"
            )

        summary = f"Audit complete: {total - inconsistent} consistent, {inconsistent} inconsistent, {total} total."
        if inconsistent:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
