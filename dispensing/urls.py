from django.urls import path

from .views import (
    CheckPendingView,
    ConfirmDispenseView,
    DirectDispenseView,
    DispenserDetailView,
    DispenserHealthView,
    DispenserHeartbeatView,
    DispenserListView,
    DispenserRegisterView,
    DispenserUnregisterView,
    PatientHistoryView,
    PatientStatsView,
    RecentDispensesView,
    RequestDispenseView,
    SessionDetailView,
    SessionStatsView,
    TodayDispensesView,
)

urlpatterns = [
    # session flow
    path('request-dispense', RequestDispenseView.as_view(), name='request-dispense'),
    path('check-pending/', CheckPendingView.as_view(), name='check-pending-default'),
    path('check-pending/<str:dispenser_id>', CheckPendingView.as_view(), name='check-pending'),
    path('confirm-dispense/<str:session_id>', ConfirmDispenseView.as_view(), name='confirm-dispense'),
    path('session/<str:session_id>', SessionDetailView.as_view(), name='session-detail'),
    path('sessions/stats', SessionStatsView.as_view(), name='session-stats'),

    # direct flow and history
    path('dispense', DirectDispenseView.as_view(), name='dispense'),
    path('dispenses/recent', RecentDispensesView.as_view(), name='dispenses-recent'),
    path('dispenses/today', TodayDispensesView.as_view(), name='dispenses-today'),
    path('patients/<str:identifier>/history', PatientHistoryView.as_view(), name='patient-history'),
    path('patients/<str:identifier>/stats', PatientStatsView.as_view(), name='patient-stats'),

    # dispenser registry
    path('dispensers', DispenserListView.as_view(), name='dispenser-list'),
    path('dispensers/register', DispenserRegisterView.as_view(), name='dispenser-register'),
    path('dispensers/<str:dispenser_id>', DispenserDetailView.as_view(), name='dispenser-detail'),
    path('dispensers/<str:dispenser_id>/heartbeat', DispenserHeartbeatView.as_view(), name='dispenser-heartbeat'),
    path('dispensers/<str:dispenser_id>/unregister', DispenserUnregisterView.as_view(), name='dispenser-unregister'),
    path('dispensers/<str:dispenser_id>/health', DispenserHealthView.as_view(), name='dispenser-health'),
]
