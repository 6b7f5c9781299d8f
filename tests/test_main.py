import pytest

from initsys.main import get_controller, reset_controller, run_main
from initsys.models.enums import LifecycleEventType, LogLevel, Phase


@pytest.fixture(autouse=True)
def fresh_default_controller():
    reset_controller()
    yield
    reset_controller()


def test_default_controller_is_shared():
    assert get_controller() is get_controller()
    first = get_controller()
    reset_controller()
    assert get_controller() is not first


def test_run_main_returns_exit_code(make_controller):
    controller = make_controller()
    ran = []
    controller.init(lambda: ran.append("init"))
    controller.on(LifecycleEventType.READY, lambda event: controller.shutdown(7))

    assert run_main(controller) == 7
    assert ran == ["init"]


def test_run_main_loads_options_for_default_controller(tmp_path, quiet_logger, monkeypatch):
    path = tmp_path / "options.yaml"
    path.write_text(
        "lifecycle:\n"
        "  exitProcess: false\n"
        "  catchSignals: false\n"
        "  catchErrors: false\n"
        "  logLevel: error\n"
    )
    controller_holder = {}

    def capture():
        controller_holder["controller"] = get_controller()

    # Registered before run_main replaces the default, so it must not run
    get_controller().init(lambda: controller_holder.setdefault("stale", True))

    import initsys.main as main_module
    real_controller = main_module.LifecycleController

    def factory(options):
        controller = real_controller(options)
        controller.init(capture)
        controller.on(LifecycleEventType.READY, lambda event: controller.shutdown())
        return controller

    monkeypatch.setattr(main_module, "LifecycleController", factory)
    assert run_main(options_path=path) == 0

    controller = controller_holder["controller"]
    assert controller is get_controller()
    assert controller.options.exit_process is False
    assert "stale" not in controller_holder
    assert quiet_logger.min_level is LogLevel.ERROR
    assert controller.completed_phases == set(Phase)
