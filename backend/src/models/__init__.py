from .models import Subscriber, BroadcastHub
