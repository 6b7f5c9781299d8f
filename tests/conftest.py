import pytest

from initsys.lifecycle.controller import LifecycleController
from initsys.models.enums import LifecycleEventType, LogLevel
from initsys.utils.logger import configure_logger, get_logger


class EventRecorder:
    """Subscribes to every lifecycle event type and keeps what it saw."""

    def __init__(self, controller: LifecycleController):
        self.events = []
        for event_type in LifecycleEventType:
            controller.on(event_type, self.events.append)

    @property
    def types(self):
        return [e.type for e in self.events]

    @property
    def errors(self):
        return [e for e in self.events if e.type is LifecycleEventType.ERROR]

    @property
    def exits(self):
        return [e for e in self.events if e.type is LifecycleEventType.EXIT]


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep test output readable; restore the singleton afterwards."""
    logger = get_logger()
    level, colors = logger.min_level, logger.use_colors
    configure_logger(LogLevel.WARN, use_colors=False)
    yield logger
    configure_logger(level, use_colors=colors)


@pytest.fixture
def make_controller():
    """Controller factory that never touches the process or its signals."""
    def factory(**overrides):
        settings = dict(exit_process=False, catch_signals=False, catch_errors=False)
        settings.update(overrides)
        return LifecycleController(**settings)
    return factory


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def recorder(controller):
    return EventRecorder(controller)


@pytest.fixture
def make_recorder():
    return EventRecorder
