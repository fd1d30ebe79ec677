from django.urls import path
from .views import (
    MechanicProfileView,
    MechanicAvailabilityView,
    MechanicLocationUpdateView,
    NearbyRequestsForMechanicView,
    OnlineMechanicsView,
)

urlpatterns = [
    path("profile/", MechanicProfileView.as_view(), name="mechanic-profile"),
    path("availability/", MechanicAvailabilityView.as_view(), name="mechanic-availability"),
    path("location/", MechanicLocationUpdateView.as_view(), name="mechanic-location"),
    path("nearby-requests/", NearbyRequestsForMechanicView.as_view(), name="mechanic-nearby-requests"),
    path("online/", OnlineMechanicsView.as_view(), name="mechanic-online"),
]
