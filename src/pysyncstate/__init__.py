"""pysyncstate - keep an in-memory reactive value in sync with a persistent backend."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysyncstate")
except PackageNotFoundError:
    __version__ = "0+local"
from pysyncstate._equality import deep_equal
from pysyncstate.backends import (
    CookieOptions,
    CookieSynchronizer,
    HttpSynchronizer,
    JsonFileSynchronizer,
    MemorySynchronizer,
)
from pysyncstate.bus import BroadcastBus, LocalBroadcastBus, MqttBroadcastBus, channel_name
from pysyncstate.config import MqttBusConfig, SyncSettings, WritePolicy
from pysyncstate.engine import (
    EnginePhase,
    SyncEngine,
    SyncStateFactory,
    WriteState,
    create_sync_state,
)
from pysyncstate.exceptions import (
    SyncBackendError,
    SyncClosedError,
    SyncConfigError,
    SyncPayloadError,
    SyncStateError,
    SyncTransportError,
)
from pysyncstate.reactive import ReactiveDict, ReactiveList, make_reactive
from pysyncstate.synchronizer import BaseSynchronizer, Synchronizer

__all__ = [
    "__version__",
    "BaseSynchronizer",
    "BroadcastBus",
    "CookieOptions",
    "CookieSynchronizer",
    "EnginePhase",
    "HttpSynchronizer",
    "JsonFileSynchronizer",
    "LocalBroadcastBus",
    "MemorySynchronizer",
    "MqttBroadcastBus",
    "MqttBusConfig",
    "ReactiveDict",
    "ReactiveList",
    "SyncBackendError",
    "SyncClosedError",
    "SyncConfigError",
    "SyncEngine",
    "SyncPayloadError",
    "SyncSettings",
    "SyncStateError",
    "SyncStateFactory",
    "SyncTransportError",
    "Synchronizer",
    "WritePolicy",
    "WriteState",
    "channel_name",
    "create_sync_state",
    "deep_equal",
    "make_reactive",
]
