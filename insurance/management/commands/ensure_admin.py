# insurance/management/commands/ensure_admin.py
import os

from django.core.management.base import BaseCommand, CommandError

from insurance.models import User


class Command(BaseCommand):
    help = "Ensure an ADMIN account exists (idempotent). Password from --password or ADMIN_PASSWORD."

    def add_arguments(self, parser):
        parser.add_argument("--username", default=os.getenv("ADMIN_USERNAME", "admin"))
        parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))

    def handle(self, *args, **opts):
        username = opts["username"]
        password = opts["password"]
        if not password:
            raise CommandError("an admin password is required (--password or ADMIN_PASSWORD)")
        u, created = User.objects.get_or_create(
            username=username,
            defaults={"roles": [User.ROLE_ADMIN], "is_staff": True, "is_superuser": True, "is_active": True},
        )
        if created:
            u.set_password(password)
            u.save(update_fields=["password"])
        else:
            roles = list(u.roles or [])
            if User.ROLE_ADMIN not in roles:
                roles.append(User.ROLE_ADMIN)
            u.roles = roles
            u.is_staff = True
            u.is_active = True
            u.set_password(password)
            u.save(update_fields=["roles", "is_staff", "is_active", "password"])
        self.stdout.write(self.style.SUCCESS(f"ok: {username} ({'created' if created else 'updated'})"))
