import uuid
from django.db import models


class TimestampedModel(models.Model):
    """
    UUID primary key plus creation / modification times.

    `created_at` is indexed: orders are listed newest first and the admin
    filters on it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def short_id(self) -> str:
        return str(self.id).split("-")[0].upper()
