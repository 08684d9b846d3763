# visit_core/filters.py
import django_filters as df

from .models import AuditLog, VisitTest


class VisitTestFilter(df.FilterSet):
    status = df.MultipleChoiceFilter(choices=VisitTest.STATUS_CHOICES)
    visit = df.NumberFilter(field_name="visit_id")
    visit_code = df.CharFilter(field_name="visit__visit_code", lookup_expr="iexact")
    category = df.CharFilter(field_name="template__category", lookup_expr="iexact")
    rejected = df.BooleanFilter(method="filter_rejected")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = VisitTest
        fields = ["status", "visit", "visit_code", "category", "rejected", "created_at"]

    def filter_rejected(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(rejection_count__gt=0)
        return queryset.filter(rejection_count=0)


class AuditLogFilter(df.FilterSet):
    action = df.CharFilter(field_name="action", lookup_expr="iexact")
    actor_username = df.CharFilter(field_name="actor_username", lookup_expr="iexact")
    resource_id = df.NumberFilter(field_name="resource_id")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = AuditLog
        fields = ["action", "actor_username", "resource_type", "resource_id", "created_at"]
