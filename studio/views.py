"""Views for the studio booking system."""

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .facade import YogaStudioAPI
from .serializers import (
    BookingHistoryQuerySerializer,
    BookingSubmitSerializer,
    CartAddSerializer,
    CartQuantitySerializer,
    CourseFilterQuerySerializer,
    DateWindowQuerySerializer,
    TeacherSearchQuerySerializer,
)
from .types import CourseFilter, Identity


ERROR_STATUS = {
    'ValidationError': status.HTTP_400_BAD_REQUEST,
    'Unauthorized': status.HTTP_403_FORBIDDEN,
    'NotFound': status.HTTP_404_NOT_FOUND,
    'ReferentialIntegrityError': status.HTTP_409_CONFLICT,
    'InvalidState': status.HTTP_409_CONFLICT,
    'CapacityExceededError': status.HTTP_409_CONFLICT,
    'TransientStoreError': status.HTTP_503_SERVICE_UNAVAILABLE,
}


class StudioAPIView(APIView):
    """Base view that answers with the facade's result envelope."""

    def get_api(self):
        return YogaStudioAPI()

    def get_identity(self, request):
        return Identity(uid=str(request.user.pk), email=request.user.email)

    def respond(self, result, success_status=status.HTTP_200_OK):
        if result.success:
            return Response(result.to_dict(), status=success_status)
        error_status = ERROR_STATUS.get(result.error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result.to_dict(), status=error_status)


class CourseListView(StudioAPIView):
    """
    List courses.

    GET /api/courses/?dayOfWeek=&time=&type=&maxPrice=&minCapacity=&maxDuration=&search=&sortBy=
    """

    def get(self, request):
        query_serializer = CourseFilterQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        course_filter = CourseFilter(
            day_of_week=data.get('dayOfWeek'),
            time=data.get('time'),
            type=data.get('type'),
            max_price=data.get('maxPrice'),
            min_capacity=data.get('minCapacity'),
            max_duration=data.get('maxDuration'),
            search=data.get('search') or None,
        )
        return self.respond(self.get_api().list_courses(course_filter, data['sortBy']))


class CourseDetailView(StudioAPIView):
    """GET /api/courses/{id}/"""

    def get(self, request, course_id):
        return self.respond(self.get_api().get_course(course_id))


class CourseScheduleListView(StudioAPIView):
    """GET /api/courses/{id}/schedules/"""

    def get(self, request, course_id):
        return self.respond(self.get_api().list_schedules_for_course(course_id))


class ScheduleListView(StudioAPIView):
    """
    List schedules joined with their course and availability.

    GET /api/schedules/ - Bookable schedules
    GET /api/schedules/?start=X&end=Y - Schedules within a date window
    """

    def get(self, request):
        query_serializer = DateWindowQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        return self.respond(
            self.get_api().list_schedules_with_courses(data.get('start'), data.get('end'))
        )


class AvailableScheduleListView(StudioAPIView):
    """GET /api/schedules/available/"""

    def get(self, request):
        return self.respond(self.get_api().list_available_schedules())


class TeacherScheduleSearchView(StudioAPIView):
    """GET /api/schedules/search/?teacher=X"""

    def get(self, request):
        query_serializer = TeacherSearchQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        teacher = query_serializer.validated_data['teacher']
        return self.respond(self.get_api().search_schedules_by_teacher(teacher))


class ScheduleDetailView(StudioAPIView):
    """GET /api/schedules/{id}/"""

    def get(self, request, schedule_id):
        return self.respond(self.get_api().get_schedule(schedule_id))


class ScheduleAvailabilityView(StudioAPIView):
    """GET /api/schedules/{id}/availability/"""

    def get(self, request, schedule_id):
        api = self.get_api()
        schedule_result = api.get_schedule(schedule_id)
        if not schedule_result.success:
            return self.respond(schedule_result)
        return self.respond(api.check_availability(schedule_result.data['courseId'], schedule_id))


class CartView(StudioAPIView):
    """
    The caller's cart.

    GET /api/cart/ - Pending items and summary
    POST /api/cart/ - Add a schedule
    DELETE /api/cart/ - Remove every pending item
    """

    def get(self, request):
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_cart(identity.uid))

    def post(self, request):
        serializer = CartAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identity = self.get_identity(request)
        result = self.get_api().add_schedule_to_cart(
            identity.uid,
            serializer.validated_data['scheduleId'],
            quantity=serializer.validated_data['quantity']
        )
        return self.respond(result, success_status=status.HTTP_201_CREATED)

    def delete(self, request):
        identity = self.get_identity(request)
        return self.respond(self.get_api().clear_cart(identity.uid))


class CartSummaryView(StudioAPIView):
    """GET /api/cart/summary/"""

    def get(self, request):
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_cart_summary(identity.uid))


class CartItemView(StudioAPIView):
    """
    A single cart item.

    PATCH /api/cart/{id}/ - Change quantity; zero or less removes it
    DELETE /api/cart/{id}/ - Remove it
    """

    def patch(self, request, cart_item_id):
        serializer = CartQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identity = self.get_identity(request)
        return self.respond(self.get_api().update_cart_quantity(
            identity.uid, cart_item_id, serializer.validated_data['quantity']
        ))

    def delete(self, request, cart_item_id):
        identity = self.get_identity(request)
        return self.respond(self.get_api().remove_from_cart(identity.uid, cart_item_id))


class BookingListView(StudioAPIView):
    """
    The caller's bookings.

    GET /api/bookings/?status=&fromDate=&toDate= - Booking history
    POST /api/bookings/ - Check out the cart
    """

    def get(self, request):
        query_serializer = BookingHistoryQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_booking_history(
            identity.uid,
            status=data.get('status'),
            from_date=data.get('fromDate'),
            to_date=data.get('toDate')
        ))

    def post(self, request):
        serializer = BookingSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_api().checkout(
            self.get_identity(request),
            cart_item_ids=serializer.validated_data.get('cartItemIds'),
            payment_details=serializer.validated_data.get('paymentDetails')
        )
        return self.respond(result, success_status=status.HTTP_201_CREATED)


class UpcomingClassListView(StudioAPIView):
    """GET /api/bookings/upcoming/"""

    def get(self, request):
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_upcoming_classes(identity.uid))


class BookingStatsView(StudioAPIView):
    """GET /api/bookings/stats/"""

    def get(self, request):
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_booking_stats(identity.uid))


class BookingDetailView(StudioAPIView):
    """GET /api/bookings/{id}/"""

    def get(self, request, booking_id):
        identity = self.get_identity(request)
        return self.respond(self.get_api().get_booking(booking_id, user_id=identity.uid))


class BookingCancelView(StudioAPIView):
    """POST /api/bookings/{id}/cancel/"""

    def post(self, request, booking_id):
        identity = self.get_identity(request)
        return self.respond(self.get_api().cancel_booking(booking_id, identity.uid))


class AppConfigView(StudioAPIView):
    """GET /api/config/"""

    def get(self, request):
        return self.respond(self.get_api().get_app_config())


class HealthCheckView(StudioAPIView):
    """GET /api/health/"""

    permission_classes = [AllowAny]

    def get(self, request):
        return self.respond(self.get_api().health_check())
