from django.http import JsonResponse
from django.urls import include, path
from django.utils import timezone


def health_check(request):
    return JsonResponse({
        'status': 'ok',
        'service': 'Medicine Dispenser API',
        'timestamp': timezone.now().isoformat(),
    })


urlpatterns = [
    path('health', health_check, name='health'),
    path('api/', include('dispensing.urls')),
]
