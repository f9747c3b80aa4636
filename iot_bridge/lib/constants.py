"""
  File with all constants in project
"""
from enum import Enum


class DeviceType(Enum):
    """Closed set of supported device families (one codec per family)"""
    V5008 = "V5008"  # binary frames, full snapshots
    V6800 = "V6800"  # JSON documents, discrete events


class MessageType(Enum):
    """Canonical message types shared by both codecs"""
    HEARTBEAT = "HEARTBEAT"
    LABEL_STATE = "LABEL_STATE"
    TEM_HUM = "TEM_HUM"
    NOISE = "NOISE"
    DOOR_STATE = "DOOR_STATE"
    OPE_ACK = "OPE_ACK"
    INIT = "INIT"
    DEVICE_INFO = "DEVICE_INFO"
    MODULE_INFO = "MODULE_INFO"


class EventType(Enum):
    """Unified event types produced by the normalizer"""
    SYS_TELEMETRY = "SYS_TELEMETRY"
    SYS_RFID_EVENT = "SYS_RFID_EVENT"
    SYS_RFID_SNAPSHOT = "SYS_RFID_SNAPSHOT"
    SYS_STATE_CHANGE = "SYS_STATE_CHANGE"
    SYS_DEVICE_INFO = "SYS_DEVICE_INFO"
    SYS_LIFECYCLE = "SYS_LIFECYCLE"
    SYS_REQUIRE_SYNC = "SYS_REQUIRE_SYNC"


class RfidAction:
    """Values for RFID tag events"""
    ATTACHED = "attached"
    DETACHED = "detached"


class LifecycleStatus:
    """Values for device lifecycle events"""
    ONLINE = "online"
    BACKUP_POWER = "backup_power"


class ResponseResult:
    """Operation acknowledgement results"""
    SUCCESS = "Success"
    FAILURE = "Failure"


class SyncReason:
    """Reasons attached to SYS_REQUIRE_SYNC"""
    CACHE_MISS = "cache_miss"


# Unified payload keys
KEY_TEMPERATURE = "temperature"
KEY_HUMIDITY = "humidity"
KEY_NOISE = "noise"
KEY_VOLTAGE = "voltage"
KEY_CURRENT = "current"
KEY_RFID_EVENT = "rfid_event"
KEY_RFID_SNAPSHOT = "rfid_snapshot"
KEY_DOOR_STATE = "door_state"
KEY_OPERATION_RESULT = "operation_result"
KEY_COLOR_MAP = "color_map"
KEY_DEVICE_INFO = "device_info"
KEY_MODULE_INFO = "module_info"
KEY_DEVICE_STATUS = "device_status"
KEY_REQUIRE_SYNC = "require_sync"

# Door state as rendered by both codecs
DOOR_STATE_OPEN = "01"
DOOR_STATE_CLOSED = "00"

# Event types routed to the device-state upsert sink
STATE_EVENT_TYPES = frozenset(
    {
        EventType.SYS_RFID_SNAPSHOT,
        EventType.SYS_STATE_CHANGE,
        EventType.SYS_DEVICE_INFO,
        EventType.SYS_LIFECYCLE,
    }
)

# Topic namespaces: <family>Upload/<deviceId>/<kind>
V5008_TOPIC_PREFIX = "V5008Upload/"
V6800_TOPIC_PREFIX = "V6800Upload/"
DEFAULT_MQTT_TOPICS = ("V5008Upload/+/#", "V6800Upload/+/#")

# Configuration file paths
DEFAULT_CONFIG_PATH = "/etc/iot-bridge/config.json"
# For logging to syslog/journald with name "iot-bridge-cli"
IOT_BRIDGE_CLI_LOGGER_NAME = "iot-bridge-cli"
