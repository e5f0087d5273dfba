from rest_framework.permissions import BasePermission


class IsClient(BasePermission):
    message = "Only client accounts can create contracts."

    def has_permission(self, request, view):
        return bool(request.user and getattr(request.user, 'user_type', None) == 'client')
