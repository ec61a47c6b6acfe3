# wordgame/models.py

from django.db import models
from django.utils import timezone


class StoredValue(models.Model):
    """Один слот локального хранилища ключ-значение."""

    key = models.CharField(primary_key=True, max_length=100)
    value = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['key']

    def __str__(self):
        return f"{self.key} ({len(self.value)} chars)"

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)
