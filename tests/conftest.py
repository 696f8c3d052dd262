import pytest

from matrixci import axis, value
from matrixci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def quiet_console():
    console = Console(quiet=True)
    set_console(console)
    return console


@pytest.fixture
def os_axes():
    return [
        axis(
            "IMAGE",
            windows=value("vs2017-win2016", AGENT_OS="Windows_NT"),
            mac=value("macos-10.13", AGENT_OS="Darwin"),
            linux=value("ubuntu-16.04", AGENT_OS="Linux"),
        ),
        axis("CHANNEL", ["stable", "nightly"]),
    ]
