import pytest

from multibrot import RenderConfig


class RecordingSink:
    """Image sink that records every call it receives."""

    def __init__(self, fail_on_row=None):
        self.calls = []
        self.rows = []
        self.fail_on_row = fail_on_row

    def begin(self, width, height, bit_depth, channels=3):
        self.calls.append(('begin', width, height, bit_depth, channels))

    def write_row(self, pixels):
        if self.fail_on_row is not None and len(self.rows) == self.fail_on_row:
            raise IOError("disk full")
        self.rows.append(bytes(pixels))
        self.calls.append(('row', len(self.rows) - 1))

    def finalize(self):
        self.calls.append(('finalize',))

    def abort(self):
        self.calls.append(('abort',))

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def small_config():
    """A minimum-size image with a shallow depth so renders stay quick."""
    return RenderConfig(
        width=100, height=100, scale=0.03, center_r=-0.5, center_i=0.0,
        power_r=2.0, power_i=0.0, workers=4, bit_depth=8, depth=64,
    )
