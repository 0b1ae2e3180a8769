"""Per-device thread and block counts for the tracking reductions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaunchConfig:
    """Threads per block and number of blocks for one kernel."""

    threads: int
    blocks: int


# device name -> (icp step, rgb step, rgb residual, so3 step)
_DEVICE_TABLE: dict[str, tuple[LaunchConfig, LaunchConfig, LaunchConfig, LaunchConfig]] = {
    name: tuple(LaunchConfig(t, b) for t, b in entries)
    for name, entries in {
        "GeForce GTX 780 Ti": ((128, 112), (128, 112), (256, 336), (160, 64)),
        "GeForce GTX 880M": ((512, 16), (512, 16), (256, 64), (384, 16)),
        "GeForce GTX 980": ((512, 32), (160, 64), (128, 512), (240, 48)),
        "GeForce GTX 970": ((128, 48), (160, 64), (128, 272), (96, 64)),
        "GeForce GTX 965M": ((256, 32), (224, 16), (384, 480), (160, 32)),
        "GeForce GTX 675MX": ((128, 80), (128, 48), (128, 80), (128, 32)),
        "Quadro K620M": ((32, 48), (128, 16), (448, 48), (32, 48)),
        "GeForce GTX TITAN": ((128, 96), (112, 96), (256, 416), (128, 64)),
        "GeForce GTX TITAN X": ((256, 96), (256, 64), (96, 496), (432, 48)),
        "GeForce GTX 980 Ti": ((320, 64), (128, 96), (224, 384), (432, 48)),
        "GeForce GTX 1070": ((64, 240), (128, 96), (256, 464), (256, 48)),
    }.items()
}

_STEP_LABELS = ("ICP Step", "RGB Step", "RGB Res", "SO3 Step")


@dataclass(frozen=True)
class GPUConfig:
    """Launch configurations for each tracking kernel."""

    icp_step: LaunchConfig = field(default_factory=lambda: LaunchConfig(128, 112))
    rgb_step: LaunchConfig = field(default_factory=lambda: LaunchConfig(128, 112))
    rgb_res: LaunchConfig = field(default_factory=lambda: LaunchConfig(256, 336))
    so3_step: LaunchConfig = field(default_factory=lambda: LaunchConfig(160, 64))

    @classmethod
    def for_device(cls, name: str) -> "GPUConfig":
        """Return the tuned settings for ``name``, or the defaults with a warning."""
        entries = _DEVICE_TABLE.get(name)
        if entries is None:
            for label in _STEP_LABELS:
                log.warning(
                    'Your GPU "%s" isn\'t in the %s performance database, please add it',
                    name,
                    label,
                )
            return cls()
        icp, rgb, res, so3 = entries
        return cls(icp_step=icp, rgb_step=rgb, rgb_res=res, so3_step=so3)