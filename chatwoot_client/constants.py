# =============================================================================
# Chatwoot Python Client -- Protocol Constants
# =============================================================================

# -- REST ---------------------------------------------------------------------

API_PREFIX = "/public/api/v1"
INBOX_PATH = API_PREFIX + "/inboxes/{inbox}"
CONTACTS_PATH = INBOX_PATH + "/contacts"
CONTACT_PATH = CONTACTS_PATH + "/{contact}"
CONVERSATIONS_PATH = CONTACT_PATH + "/conversations"
MESSAGES_PATH = CONVERSATIONS_PATH + "/{conversation}/messages"

# -- Timing (seconds) --------------------------------------------------------

REQUEST_TIMEOUT = 30.0
CONNECTION_TIMEOUT = 10.0

# -- ActionCable --------------------------------------------------------------

CABLE_PATH = "/cable"
CABLE_CHANNEL = "RoomChannel"

TYPE_WELCOME = "welcome"
TYPE_PING = "ping"
TYPE_CONFIRM_SUBSCRIPTION = "confirm_subscription"

COMMAND_SUBSCRIBE = "subscribe"
COMMAND_MESSAGE = "message"

ACTION_TOGGLE_TYPING = "toggle_typing"
ACTION_UPDATE_PRESENCE = "update_presence"

# -- Presence -----------------------------------------------------------------

PRESENCE_ONLINE = "online"

# -- Messages -----------------------------------------------------------------

# Chatwoot message_type values; "outgoing" is sent by an agent.
MESSAGE_TYPE_INCOMING = 0
MESSAGE_TYPE_OUTGOING = 1
MESSAGE_TYPE_ACTIVITY = 2
MESSAGE_TYPE_TEMPLATE = 3

MESSAGE_TYPE_NAMES = {
    "incoming": MESSAGE_TYPE_INCOMING,
    "outgoing": MESSAGE_TYPE_OUTGOING,
    "activity": MESSAGE_TYPE_ACTIVITY,
    "template": MESSAGE_TYPE_TEMPLATE,
}

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Storage ------------------------------------------------------------------

DEFAULT_STORAGE_FILE = "chatwoot_client.db"
STORAGE_DIR_NAME = ".chatwoot"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
