import asyncio

import pytest

from initsys.lifecycle.task_protocol import callback_task
from initsys.models.errors import CallbackError


@pytest.mark.asyncio
async def test_done_without_error_succeeds():
    calls = []

    def connect(done):
        calls.append("connect")
        asyncio.get_running_loop().call_soon(done)

    await callback_task(connect)()
    assert calls == ["connect"]


@pytest.mark.asyncio
async def test_exception_passed_to_done_is_raised():
    def connect(done):
        done(ConnectionError("refused"))

    with pytest.raises(ConnectionError, match="refused"):
        await callback_task(connect)()


@pytest.mark.asyncio
async def test_other_error_values_are_wrapped():
    def connect(done):
        done("disk full")

    with pytest.raises(CallbackError) as exc_info:
        await callback_task(connect)()
    assert exc_info.value.message == "disk full"
    assert exc_info.value.value == "disk full"


@pytest.mark.asyncio
async def test_falsy_error_values_mean_success():
    def connect(done):
        done(None)

    def connect_zero(done):
        done(0)

    await callback_task(connect)()
    await callback_task(connect_zero)()


@pytest.mark.asyncio
async def test_second_done_is_logged_and_ignored(capsys):
    def chatty(done):
        done()
        done(ValueError("late"))

    await callback_task(chatty)()
    assert "signalled completion more than once" in capsys.readouterr().out


def test_adapter_keeps_the_body_name():
    def open_socket(done):
        done()

    assert callback_task(open_socket).__name__ == "open_socket"
