import os
from django.core.management.base import BaseCommand
from django.conf import settings
from django.contrib.auth import get_user_model

class Command(BaseCommand):
    help = "Create or update a shop administrator from ADMIN_EMAIL / ADMIN_PASSWORD."

    def handle(self, *args, **options):
        if not settings.DEBUG and not os.getenv("ALLOW_CREATE_ADMIN_IN_PROD") == "True":
            self.stderr.write(self.style.ERROR(
                "Production Lock: Set ALLOW_CREATE_ADMIN_IN_PROD=True to run this."
            ))
            return

        email = os.getenv("ADMIN_EMAIL")
        password = os.getenv("ADMIN_PASSWORD")

        if not email or not password:
            self.stderr.write(self.style.ERROR(
                "Missing ADMIN_EMAIL or ADMIN_PASSWORD env vars."
            ))
            return

        User = get_user_model()

        user, created = User.objects.get_or_create(
            email=User.objects.normalize_email(email),
            defaults={"role": "ADMIN", "is_active": True}
        )

        user.is_staff = True
        user.is_superuser = True
        user.role = "ADMIN"
        user.set_password(password)
        user.save()

        if created:
            self.stdout.write(self.style.SUCCESS(f"Created admin: {user.email}"))
        else:
            self.stdout.write(self.style.WARNING(f"Updated admin: {user.email}"))
