"""
Enums for the lifecycle state machine
"""

from enum import Enum, auto


class Phase(Enum):
    """
    The four ordered lifecycle phases.

    INIT and START run on startup, STOP and FINISH on shutdown.
    Each phase has a queue of tasks and runs at most once.
    """
    INIT = auto()
    START = auto()
    STOP = auto()
    FINISH = auto()

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def entering(self) -> "LifecycleEventType":
        """Event published right before the phase queue is drained"""
        return _PHASE_ENTERING[self]

    @property
    def completed(self) -> "LifecycleEventType":
        """Event published once the phase queue drained successfully"""
        return _PHASE_COMPLETED[self]


class LifecycleState(Enum):
    """Controller position in the lifecycle (phases plus logical states)"""
    PRE = auto()
    INIT = auto()
    START = auto()
    READY = auto()         # Start completed, not a phase
    STANDALONE = auto()    # Standalone task running
    STOP = auto()
    FINISH = auto()
    END = auto()

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def for_phase(cls, phase: Phase) -> "LifecycleState":
        return cls[phase.name]


class LifecycleEventType(Enum):
    """Observable lifecycle notifications"""
    STARTUP = auto()

    INITING = auto()
    INITED = auto()
    STARTING = auto()
    STARTED = auto()

    READY = auto()
    SHUTDOWN = auto()

    STOPPING = auto()
    STOPPED = auto()
    FINISHING = auto()
    FINISHED = auto()

    END = auto()
    ERROR = auto()
    EXIT = auto()


class ErrorKind(Enum):
    """Where a propagated error came from"""
    USAGE = auto()      # Misuse of the registration / lifecycle API
    TASK = auto()       # A registered task failed
    RUNTIME = auto()    # Unhandled error caught by the loop trap
    SHUTDOWN = auto()   # Failure while stop / finish is running


class LogLevel(Enum):
    """Log severity levels"""
    DEBUG = auto()
    INFO = auto()
    WARN = auto()
    ERROR = auto()


class LogCategory(Enum):
    """Log categories for grouping related events"""
    CONFIG = auto()      # Options loading, validation
    SYSTEM = auto()      # Startup, ready, end
    LIFECYCLE = auto()   # Phase transitions
    TASK = auto()        # Task execution, slow tasks
    SHUTDOWN = auto()    # Shutdown sequence, forced exit
    SIGNAL = auto()      # OS signal traps
    EVENT = auto()       # Event bus events and handling
    API = auto()         # HTTP integration

    GENERAL = auto()    # Default general category


_PHASE_ENTERING = {
    Phase.INIT: LifecycleEventType.INITING,
    Phase.START: LifecycleEventType.STARTING,
    Phase.STOP: LifecycleEventType.STOPPING,
    Phase.FINISH: LifecycleEventType.FINISHING,
}

_PHASE_COMPLETED = {
    Phase.INIT: LifecycleEventType.INITED,
    Phase.START: LifecycleEventType.STARTED,
    Phase.STOP: LifecycleEventType.STOPPED,
    Phase.FINISH: LifecycleEventType.FINISHED,
}
