from rest_framework import permissions


class IsCompanyOrStaff(permissions.BasePermission):
    """
    Read access for any authenticated user.
    Writes (creating events, issuing tickets) only for company accounts and staff.
    """
    message = "Only company accounts can perform this action."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return user.is_staff or getattr(user, "is_company", False)


class IsEventCompanyOrStaff(permissions.BasePermission):
    """
    Object-level check for events and tickets: the company that owns the event (or staff)
    may change it. Ticket holders may only read their own tickets.
    """
    message = "You must be the event company to perform this action."

    def has_object_permission(self, request, view, obj):
        user = request.user
        if user.is_staff:
            return True
        # tickets point at their event; events are their own
        event = getattr(obj, "event", obj)
        is_company = event is not None and getattr(event, "company_id", None) == user.id
        if request.method in permissions.SAFE_METHODS:
            return is_company or getattr(obj, "owner_id", None) == user.id
        return is_company
