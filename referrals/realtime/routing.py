from django.urls import path

from referrals.realtime.consumers import ReferralUpdatesConsumer

websocket_urlpatterns = [
    path("ws/referrals/", ReferralUpdatesConsumer.as_asgi()),
]
