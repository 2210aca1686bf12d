from rest_framework.permissions import BasePermission


class IsAdmin(BasePermission):
    """
    Shop administrators (role ADMIN) and superusers.
    """
    message = "Only shop administrators can perform this action."

    def has_permission(self, request, view):
        return (
            request.user.is_authenticated and 
            request.user.is_admin
        )
