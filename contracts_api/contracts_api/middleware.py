import logging
from django.utils import timezone

logger = logging.getLogger('audit')

class UserActivityLoggingMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        user = getattr(request, 'user', None)
        actor = user.pk if user is not None and user.is_authenticated else "Anonymous"
        path = request.get_full_path()
        ip = self.get_client_ip(request)
        timestamp = timezone.now().isoformat()

        logger.info(f"[{timestamp}] user={actor} - {request.method} {path} -> {response.status_code} - IP: {ip}")

        return response

    @staticmethod
    def get_client_ip(request):
        forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
