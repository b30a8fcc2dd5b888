import django_filters

from modules.orders.constants import OrderStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    """Query-string filters for the order listing.

    Used for validation only: the view checks ``request.query_params``
    through this FilterSet and hands the cleaned values to
    ``RoleScopedOrderQuery``, which applies them together with the
    actor's visibility scope.  ``.qs`` is never evaluated.
    """

    status = django_filters.ChoiceFilter(choices=OrderStatus.choices)
    assigned_only = django_filters.BooleanFilter()
    unassigned_only = django_filters.BooleanFilter()
    created_on = django_filters.DateFilter(
        field_name="created_at", lookup_expr="date"
    )
    created_from = django_filters.DateFilter(
        field_name="created_at", lookup_expr="date__gte"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "assigned_only",
            "unassigned_only",
            "created_on",
            "created_from",
        ]

    def list_filters(self) -> dict:
        """Cleaned, non-empty values keyed like ``OrderListFiltersDTO``."""
        return {
            key: value
            for key, value in self.form.cleaned_data.items()
            if value not in (None, "")
        }
