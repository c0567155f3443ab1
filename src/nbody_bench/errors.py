class AcceleratorError(RuntimeError):
    """Base class for failures of the accelerator backend. Never retried on another backend."""


class DeviceUnavailable(AcceleratorError):
    """No suitable accelerator was found when the context was opened."""


class DeviceMapFailure(AcceleratorError):
    """The device reported an error while making the result visible to the host."""


class AllocationTooLarge(AcceleratorError):
    """The requested buffers exceed a limit reported by (or configured for) the device."""

    def __init__(self, requested_bytes, limit_bytes, what="buffer"):
        self.requested_bytes = requested_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"{what} needs {requested_bytes / 2**20:.2f} MiB but the device limit is "
            f"{limit_bytes / 2**20:.2f} MiB"
        )


class ConfigError(ValueError):
    pass
