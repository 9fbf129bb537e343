"""
URL routing for the studio API.
"""

from django.urls import path
from .views import (
    AppConfigView,
    AvailableScheduleListView,
    BookingCancelView,
    BookingDetailView,
    BookingListView,
    BookingStatsView,
    CartItemView,
    CartSummaryView,
    CartView,
    CourseDetailView,
    CourseListView,
    CourseScheduleListView,
    HealthCheckView,
    ScheduleAvailabilityView,
    ScheduleDetailView,
    ScheduleListView,
    TeacherScheduleSearchView,
    UpcomingClassListView,
)

urlpatterns = [
    path('courses/', CourseListView.as_view(), name='course-list'),
    path('courses/<str:course_id>/', CourseDetailView.as_view(), name='course-detail'),
    path('courses/<str:course_id>/schedules/', CourseScheduleListView.as_view(), name='course-schedules'),
    path('schedules/', ScheduleListView.as_view(), name='schedule-list'),
    path('schedules/available/', AvailableScheduleListView.as_view(), name='schedule-available'),
    path('schedules/search/', TeacherScheduleSearchView.as_view(), name='schedule-search'),
    path('schedules/<str:schedule_id>/', ScheduleDetailView.as_view(), name='schedule-detail'),
    path('schedules/<str:schedule_id>/availability/', ScheduleAvailabilityView.as_view(), name='schedule-availability'),
    path('cart/', CartView.as_view(), name='cart'),
    path('cart/summary/', CartSummaryView.as_view(), name='cart-summary'),
    path('cart/<str:cart_item_id>/', CartItemView.as_view(), name='cart-item'),
    path('bookings/', BookingListView.as_view(), name='booking-list'),
    path('bookings/upcoming/', UpcomingClassListView.as_view(), name='booking-upcoming'),
    path('bookings/stats/', BookingStatsView.as_view(), name='booking-stats'),
    path('bookings/<str:booking_id>/', BookingDetailView.as_view(), name='booking-detail'),
    path('bookings/<str:booking_id>/cancel/', BookingCancelView.as_view(), name='booking-cancel'),
    path('config/', AppConfigView.as_view(), name='app-config'),
    path('health/', HealthCheckView.as_view(), name='health'),
]
