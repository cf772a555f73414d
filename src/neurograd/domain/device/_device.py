"""
Device abstraction utilities.

Execution options accept a target device, but the graph core always runs
synchronously on the CPU: the device is validated and recorded, never used
to select a backend. This module provides the validated descriptor.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """
    Enumeration of supported device categories.

    Attributes
    ----------
    CPU : DeviceType
        Central Processing Unit.
    GPU : DeviceType
        Graphics Processing Unit (configuration only).
    """

    CPU = "cpu"
    GPU = "gpu"


class Device:
    """
    Validated computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be one of:
        - "cpu"
        - "gpu"
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        elif device == "gpu":
            self.type = DeviceType.GPU
            self.index = 0
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu', 'gpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.GPU
            self.index = int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """
        Check whether this device represents a CPU.

        Returns
        -------
        bool
            True if the device type is CPU, False otherwise.
        """
        return self.type is DeviceType.CPU
