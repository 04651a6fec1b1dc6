"""Device base class for capture sources.

Every capture source inherits from `Device` and implements the methods of
`uhdbridge.types.CaptureSourceProtocol`. The base class provides:

1. Configuration keyword validation
2. Connection handling hooks
3. Attribute dumps for logging
"""

from __future__ import annotations

from typing import Type

from loguru import logger


class Device:
    """Base class for all capture sources.

    Implementations override `open`, `close` and `is_connected`, plus the
    methods required by `CaptureSourceProtocol`. Configuration is passed as
    keyword arguments and stored as attributes; keys listed in
    `required_config` must be present with the right type.

    Attributes
    ----------
    required_config : dict[str, Type]
        Required configuration parameters and their types

    Examples
    --------
    ```python
    class MySource(Device):
        required_config = {"device_args": str}

        def open(self) -> tuple[bool, str]:
            self._connected = True
            return True, "Connected"
    ```
    """

    required_config: dict[str, Type] = {}

    def __init__(self, **config_kwargs):
        for key, value in config_kwargs.items():
            setattr(self, key, value)
        for key, value in self.required_config.items():
            if not hasattr(self, key):
                logger.error(
                    f"Device {self.__class__.__name__} missing required config key {key}"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} missing required config key {key}"
                )
            if not isinstance(getattr(self, key), value):
                logger.error(
                    f"Device {self.__class__.__name__} config key {key} "
                    + f"has wrong type: {type(getattr(self, key))} (expected {value})"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} config key {key} has "
                    + f"wrong type: {type(getattr(self, key))} (expected {value})"
                )

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()

    def get_all_attrs(self):
        """
        Function to return all of the managed attributes of the class
        Managed attributes are the ones that start with a underscore
        """
        attrs = {}
        for key, value in self.__dict__.items():
            # single underscore attr are managed
            if key[0] == "_" and not key.startswith(f"_{self.__class__.__name__}"):
                attrs[key[1:]] = value
        return attrs

    def unroll_metadata(self):
        return self.get_all_attrs()
