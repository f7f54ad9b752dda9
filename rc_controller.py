import math
from enum import Enum

from kivy.event import EventDispatcher
from kivy.logger import Logger
from kivy.properties import NumericProperty, ObjectProperty, StringProperty

from bt_transport import run_in_background
from directions import DEFAULT_CODES, Direction, indicated_direction
from exceptions import (
    ConnectFailed, NoDeviceSelected, NoPairedDevices, PermissionDenied, PolyautoError,
)


class ConnectionState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    FAILED = 'failed'


def speed_percent(value):
    """Slider value in [0, 1] to a whole percentage, halves rounded up."""
    return max(0, min(100, int(math.floor(value * 100 + 0.5))))


class Controller(EventDispatcher):
    """Connection state, held directions and the command stream to the car.

    Every transition runs on the Kivy thread. Views observe the properties
    below instead of holding any of this state themselves.
    """
    state = ObjectProperty(ConnectionState.DISCONNECTED)
    status = StringProperty("Disconnected")
    device_name = StringProperty("")
    indicated = ObjectProperty(None, allownone=True)
    speed = NumericProperty(0.5)
    last_command = StringProperty("")

    def __init__(self, transport, settings=None, runner=run_in_background, **kwargs):
        super().__init__(**kwargs)
        self.transport = transport
        self.settings = settings
        self.runner = runner
        self.connection = None
        self.active = set()
        self.codes = dict(DEFAULT_CODES)
        self._chooser = None
        self._closed = False
        self.load_codes()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Connection lifecycle
    @property
    def is_connected(self):
        return self.state is ConnectionState.CONNECTED and self.connection is not None

    def connect(self, chooser):
        """Start a connect attempt.

        ``chooser(devices, on_selected)`` presents the paired devices and
        calls ``on_selected`` with one of them, or with None when the user
        picks nothing. Returns False when the attempt was not started.
        """
        if self._closed:
            return False
        if self.state is ConnectionState.CONNECTING:
            Logger.info("Controller: connect ignored, an attempt is already in progress")
            return False
        if self.is_connected:
            Logger.info("Controller: connect ignored, already connected")
            return False

        self._chooser = chooser
        self.status = "Scanning..."
        self.state = ConnectionState.CONNECTING
        self.runner(self._list_devices, self._on_devices)
        return True

    def _list_devices(self):
        if not self.transport.authorize():
            raise PermissionDenied("Bluetooth permission not granted")
        devices = self.transport.list_paired_devices()
        if not devices:
            raise NoPairedDevices("Pair with your RC car first")
        return devices

    def _on_devices(self, devices, error):
        if self._closed:
            return
        if error is not None:
            self._connect_failed(error)
            return
        Logger.info(f"Controller: {len(devices)} paired devices")
        self.status = "Select a device"
        self._chooser(devices, self._on_selected)

    def _on_selected(self, device):
        # Only the first answer from the chooser counts
        if self._closed or self._chooser is None:
            return
        if self.state is not ConnectionState.CONNECTING:
            return
        if device is None:
            self._connect_failed(NoDeviceSelected())
            return

        self._chooser = None
        Logger.info(f"Controller: connecting to {device.name} ({device.address})")
        self.device_name = device.name
        self.status = f"Connecting to {device.name}..."
        self.runner(
            lambda: self.transport.open(device.address),
            lambda connection, error: self._on_opened(device, connection, error),
        )

    def _on_opened(self, device, connection, error):
        if error is not None:
            if self._closed:
                return
            if not isinstance(error, PolyautoError):
                error = ConnectFailed(device.address, error)
            self._connect_failed(error)
            return
        if (self._closed or self.connection is not None
                or self.state is not ConnectionState.CONNECTING):
            # Shut down, or a link already exists, while the socket was opening
            Logger.warning(f"Controller: discarding surplus link to {device.name}")
            connection.close()
            return

        self.connection = connection
        self.status = "Connected"
        self.state = ConnectionState.CONNECTED
        Logger.info(f"Controller: connected to {device.name}")

    def _connect_failed(self, error):
        self._chooser = None
        if isinstance(error, NoDeviceSelected):
            Logger.info("Controller: no device selected")
            self.device_name = ""
            self.status = error.status
            self.state = ConnectionState.DISCONNECTED
            return

        if isinstance(error, PolyautoError):
            Logger.warning(f"Controller: {error.status}: {error}")
            status = error.status
        else:
            Logger.error(f"Controller: unexpected connect error: {error!r}")
            status = ConnectFailed.status
        self.device_name = ""
        self.status = status
        self.state = ConnectionState.FAILED

    def _release_connection(self):
        connection, self.connection = self.connection, None
        try:
            connection.close()
        except Exception as e:
            Logger.warning(f"Controller: error while closing connection: {e}")

    def disconnect(self):
        if self.connection is None:
            return False
        self._release_connection()
        self.device_name = ""
        self.status = "Disconnected"
        self.state = ConnectionState.DISCONNECTED
        Logger.info("Controller: disconnected")
        return True

    def close(self):
        """Release the link on shutdown. Safe to call more than once."""
        self._closed = True
        self.disconnect()

    # Direction input
    def press(self, direction):
        if direction in self.active:
            return False
        self.active.add(direction)
        self.indicated = indicated_direction(self.active)
        self.send_command(direction)
        return True

    def release(self, direction):
        if direction not in self.active:
            return False
        self.active.discard(direction)
        self.indicated = indicated_direction(self.active)
        return True

    def release_all(self):
        """Cancel every held input, e.g. when the app loses focus."""
        self.active.clear()
        self.indicated = None

    def current_indicated_direction(self):
        return indicated_direction(self.active)

    # Transmission
    def _write(self, text):
        if not self.is_connected:
            Logger.debug(f"Controller: not connected, dropped {text!r}")
            return False
        try:
            self.connection.write(text.encode('ascii', errors='replace'))
        except Exception as e:
            Logger.error(f"Controller: write failed, dropping link: {e}")
            self._release_connection()
            self.device_name = ""
            self.status = "Connection lost"
            self.state = ConnectionState.FAILED
            return False
        self.last_command = text
        Logger.debug(f"Controller: sent {text!r}")
        return True

    def send_command(self, direction):
        return self._write(self.get_code(direction))

    def send_speed(self, value):
        return self._write(f"v{speed_percent(value)}")

    def set_speed(self, value):
        self.speed = max(0.0, min(1.0, value))
        return self.send_speed(self.speed)

    # Command map
    def get_code(self, direction):
        return self.codes.get(direction) or direction.key

    def set_code(self, direction, code):
        self.codes[direction] = code
        if self.settings is not None:
            self.settings.set(direction.setting_key, code)
        Logger.info(f"Controller: {direction.label} now sends {code!r}")

    def load_codes(self):
        if self.settings is None:
            return
        for direction in Direction:
            code = self.settings.get(direction.setting_key)
            if code:
                self.codes[direction] = code

    def reset_codes(self):
        for direction, code in DEFAULT_CODES.items():
            self.set_code(direction, code)
