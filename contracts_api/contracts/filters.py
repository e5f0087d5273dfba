import django_filters
from django.db.models import Q

from .models import Contract


class ContractFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Contract.STATUS_CHOICES)
    role = django_filters.ChoiceFilter(
        choices=(('client', 'Client'), ('freelancer', 'Freelancer')),
        method='filter_role',
    )

    class Meta:
        model = Contract
        fields = ['status', 'role']

    def filter_role(self, queryset, name, value):
        user = self.request.user
        if value == 'client':
            return queryset.filter(client=user)
        return queryset.filter(freelancer=user)


def contracts_visible_to(user):
    queryset = Contract.objects.select_related('client', 'freelancer').prefetch_related('milestones')
    if user.is_staff:
        return queryset
    return queryset.filter(Q(client=user) | Q(freelancer=user))
