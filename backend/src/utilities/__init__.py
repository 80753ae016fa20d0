from .constants import Settings, get_settings, SUBSCRIBER_QUEUE_SIZE, HEARTBEAT_INTERVAL, PUBLIC_DIR
from .utility_functions import now_ts, format_event, format_comment
