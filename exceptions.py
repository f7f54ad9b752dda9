class PolyautoError(Exception):
    """Base class for recoverable controller errors."""
    status = "Error"


class PermissionDenied(PolyautoError):
    status = "Bluetooth permission denied"


class NoPairedDevices(PolyautoError):
    status = "No paired devices found"


class NoDeviceSelected(PolyautoError):
    """Raised when the user dismisses the device picker."""
    status = "No device selected"


class ConnectFailed(PolyautoError):
    status = "Connection failed"

    def __init__(self, address, reason=None):
        self.address = address
        self.reason = reason
        message = f"Could not connect to {address}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
