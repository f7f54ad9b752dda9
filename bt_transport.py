import threading
import time
from collections import namedtuple

import serial
from serial.tools import list_ports
from kivy.clock import Clock
from kivy.logger import Logger

from exceptions import ConnectFailed

# Try to import jnius / android API
HAS_ANDROID = False
try:
    from jnius import autoclass, detach
    from android.permissions import request_permissions, Permission, check_permission
    HAS_ANDROID = True
except Exception as e:
    HAS_ANDROID = False
    Logger.info(f"Bluetooth: Android components not available: {e}")

# Serial Port Profile, the service HC-05/HC-06 modules and ESP32 BluetoothSerial expose
SPP_UUID = '00001101-0000-1000-8000-00805F9B34FB'

PairedDevice = namedtuple('PairedDevice', ['name', 'address'])


def run_in_background(task, on_done):
    """Run a blocking transport call on a worker thread.

    ``on_done(result, error)`` is scheduled on the Kivy clock, so callers only
    ever see the outcome on the UI thread.
    """
    def worker():
        try:
            result, error = task(), None
        except Exception as e:
            result, error = None, e
        finally:
            if HAS_ANDROID:
                # Threads that touched the JVM must detach before exiting
                detach()
        Clock.schedule_once(lambda dt: on_done(result, error))

    threading.Thread(target=worker, daemon=True).start()


class AndroidSocketStream:
    def __init__(self, socket):
        self.socket = socket
        self.output = socket.getOutputStream()

    def write(self, data):
        self.output.write(bytearray(data))
        self.output.flush()

    def close(self):
        try:
            self.output.close()
        finally:
            self.socket.close()


class AndroidBluetoothSerial:
    """Classic Bluetooth (RFCOMM) link to a bonded device through pyjnius."""

    def __init__(self):
        self.adapter = None

    def _get_adapter(self):
        if self.adapter is None:
            BluetoothAdapter = autoclass('android.bluetooth.BluetoothAdapter')
            self.adapter = BluetoothAdapter.getDefaultAdapter()
        return self.adapter

    def required_permissions(self):
        VERSION = autoclass('android.os.Build$VERSION')
        # Android 12 split the runtime permissions
        if VERSION.SDK_INT >= 31:
            return [Permission.BLUETOOTH_CONNECT, Permission.BLUETOOTH_SCAN]
        return [Permission.BLUETOOTH, Permission.BLUETOOTH_ADMIN]

    def request_permissions(self):
        """Ask for whatever Bluetooth permission is still missing."""
        try:
            missing = [perm for perm in self.required_permissions() if not check_permission(perm)]
            if missing:
                request_permissions(missing)
                Logger.info(f"Bluetooth: requested missing permissions: {missing}")
            else:
                Logger.info("Bluetooth: all permissions already granted")
        except Exception as e:
            Logger.error(f"Bluetooth: permission request error: {e}")

    def authorize(self):
        return all(check_permission(perm) for perm in self.required_permissions())

    def list_paired_devices(self):
        adapter = self._get_adapter()
        if not adapter:
            Logger.warning("Bluetooth: not supported on this device")
            return []
        if not adapter.isEnabled():
            Logger.warning("Bluetooth: adapter is not enabled")
            return []

        devices = []
        for device in adapter.getBondedDevices().toArray():
            address = device.getAddress()
            devices.append(PairedDevice(device.getName() or address, address))
        Logger.info(f"Bluetooth: found {len(devices)} bonded devices")
        return devices

    def open(self, address):
        UUID = autoclass('java.util.UUID')
        adapter = self._get_adapter()
        socket = None
        try:
            device = adapter.getRemoteDevice(address)
            socket = device.createRfcommSocketToServiceRecord(UUID.fromString(SPP_UUID))
            # Discovery slows down connect() considerably
            adapter.cancelDiscovery()
            socket.connect()
            return AndroidSocketStream(socket)
        except Exception as e:
            if socket is not None:
                socket.close()
            raise ConnectFailed(address, e) from e


class SerialPortTransport:
    """Desktop link through the serial port the OS binds to a paired device
    (/dev/rfcomm* on Linux, an outgoing Bluetooth COM port on Windows,
    /dev/cu.* on macOS)."""

    BLUETOOTH_HINTS = ('rfcomm', 'bluetooth', 'bthenum', 'serialport')

    def __init__(self, baudrate=9600, write_timeout=1.0):
        self.baudrate = baudrate
        self.write_timeout = write_timeout

    def request_permissions(self):
        pass

    def authorize(self):
        return True

    def _is_bluetooth_port(self, port):
        text = ' '.join(filter(None, (port.device, port.description, port.hwid))).lower()
        return any(hint in text for hint in self.BLUETOOTH_HINTS)

    def list_paired_devices(self):
        devices = []
        for port in list_ports.comports():
            if self._is_bluetooth_port(port):
                name = port.description if port.description and port.description != 'n/a' else port.device
                devices.append(PairedDevice(name, port.device))
        Logger.info(f"Bluetooth: found {len(devices)} Bluetooth serial ports")
        return devices

    def open(self, address):
        try:
            return serial.Serial(address, self.baudrate, write_timeout=self.write_timeout)
        except (serial.SerialException, ValueError) as e:
            raise ConnectFailed(address, e) from e


class SimulatedStream:
    def __init__(self, address):
        self.address = address
        self.sent = []
        self.closed = False

    def write(self, data):
        self.sent.append(bytes(data))
        Logger.info(f"Bluetooth: [SEND SIMULATION] {data!r}")

    def close(self):
        self.closed = True


class SimulatedTransport:
    """Stand-in car for running the app without any Bluetooth hardware."""

    DEVICES = [
        PairedDevice('ESP32_RC_Car_01', 'AA:BB:CC:DD:EE:FF'),
        PairedDevice('Arduino_Car_BT', '11:22:33:44:55:66'),
        PairedDevice('Smart_RC_Car', 'CC:DD:EE:FF:11:22'),
    ]

    def __init__(self, devices=None, connect_delay=1.0):
        self.devices = list(self.DEVICES if devices is None else devices)
        self.connect_delay = connect_delay

    def request_permissions(self):
        pass

    def authorize(self):
        return True

    def list_paired_devices(self):
        return list(self.devices)

    def open(self, address):
        if address not in [device.address for device in self.devices]:
            raise ConnectFailed(address, "unknown device")
        time.sleep(self.connect_delay)
        Logger.info(f"Bluetooth: simulated connection to {address}")
        return SimulatedStream(address)


def create_transport(kind='auto', baudrate=9600):
    if kind == 'simulate':
        return SimulatedTransport()
    if kind == 'serial':
        return SerialPortTransport(baudrate)
    if kind == 'android':
        if not HAS_ANDROID:
            raise ValueError("Android transport requires pyjnius on Android")
        return AndroidBluetoothSerial()
    if kind != 'auto':
        raise ValueError(f"Unknown transport: {kind}")
    if HAS_ANDROID:
        return AndroidBluetoothSerial()
    return SerialPortTransport(baudrate)
