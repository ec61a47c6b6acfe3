# wordgame/admin.py
from django.contrib import admin

from .models import StoredValue
from .exceptions import PersistenceCorrupt
from .scores import deserialize


class StoredValueAdmin(admin.ModelAdmin):
    list_display = ('key', 'get_entries_count', 'updated_at')
    search_fields = ('key',)
    readonly_fields = ('updated_at',)

    def get_entries_count(self, obj):
        try:
            return len(deserialize(obj.value))
        except PersistenceCorrupt:
            return '-'
    get_entries_count.short_description = 'Entries'


admin.site.register(StoredValue, StoredValueAdmin)
