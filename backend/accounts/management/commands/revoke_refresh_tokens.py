"""Management command to revoke stored refresh tokens."""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.management.base import BaseCommand, CommandError

from accounts.models import User


class Command(BaseCommand):
    help = "Clear stored refresh tokens so affected users must log in again."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--username",
            dest="usernames",
            action="append",
            help="Revoke only the given user's token. Can be supplied multiple times.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report how many users would be affected without changing anything.",
        )

    def handle(self, *args, **options) -> None:
        usernames: Optional[Iterable[str]] = options.get("usernames")
        dry_run: bool = options.get("dry_run")

        queryset = User.objects.exclude(refresh_token="")
        if usernames:
            normalized = [name.strip().lower() for name in usernames]
            missing = set(normalized) - set(
                User.objects.filter(username__in=normalized).values_list("username", flat=True)
            )
            if missing:
                raise CommandError(f"Unknown username(s): {', '.join(sorted(missing))}")
            queryset = queryset.filter(username__in=normalized)

        total = queryset.count()
        if total == 0:
            self.stdout.write(self.style.WARNING("No stored refresh tokens matched the requested filters."))
            return

        if dry_run:
            self.stdout.write(f"Would revoke refresh tokens for {total} user(s).")
            return

        revoked = queryset.update(refresh_token="")
        self.stdout.write(self.style.SUCCESS(f"Revoked refresh tokens for {revoked} user(s)."))
