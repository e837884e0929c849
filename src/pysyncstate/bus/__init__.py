"""Cross-instance notification channels used by backends to announce writes."""

from pysyncstate.bus.local import BroadcastBus, LocalBroadcastBus, channel_name
from pysyncstate.bus.mqtt import MqttBroadcastBus

__all__ = [
    "BroadcastBus",
    "LocalBroadcastBus",
    "MqttBroadcastBus",
    "channel_name",
]
