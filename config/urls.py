"""
URL configuration for the EHS escalation service.

Templates, records, users and logs are managed through the Django admin;
escalation cycles run on the Django-Q2 schedule.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]

# Admin site customization
admin.site.site_header = 'EHS Escalation Administration'
admin.site.site_title = 'EHS Escalation Admin'
admin.site.index_title = 'Escalation templates, records and notification log'
