# req_core/common/management/commands/ensure_profiles.py

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from req_core.common.permissions import ROLE_ADMIN, ROLE_READONLY
from req_core.iam.models import UserProfile


class Command(BaseCommand):
    help = "Ensure every user has a requisition profile (idempotent)."

    def handle(self, *args, **options):
        created = 0
        User = get_user_model()
        for user in User.objects.filter(req_profile__isnull=True):
            UserProfile.objects.create(
                user=user,
                display_name=user.get_full_name() or user.get_username(),
                role=ROLE_ADMIN if user.is_superuser else ROLE_READONLY,
            )
            created += 1

        self.stdout.write(self.style.SUCCESS(f"Profiles ensured. Newly created: {created}"))
