"""DRM device discovery for GPU passthrough.

Cards are enumerated from the host's /dev/dri and paired with their render
node through sysfs. Selection never guesses between several cards: a card is
picked implicitly only when it is the sole candidate.
"""
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pveforge.core.config import get_config
from pveforge.core.errors import AmbiguousDevice, MissingDevice
from pveforge.core.logger import get_logger

logger = get_logger(__name__)

VENDORS = {
    "0x8086": "intel",
    "0x1002": "amd",
    "0x10de": "nvidia",
}

_CARD_RE = re.compile(r"^card(\d+)$")
_RENDER_RE = re.compile(r"^renderD(\d+)$")


@dataclass(frozen=True)
class GpuDevice:
    """One DRM card on the host."""
    index: int
    card: str  # /dev/dri/cardN
    render: Optional[str] = None  # /dev/dri/renderDNNN
    vendor: str = "unknown"
    model: str = ""

    @property
    def name(self) -> str:
        return Path(self.card).name


MOCK_GPU = GpuDevice(0, "/dev/dri/card0", "/dev/dri/renderD128", "intel", "Mock Intel iGPU")


class GpuDetector:
    """Enumerates DRM card and render nodes on the Proxmox host."""

    def __init__(self, dri_dir: Optional[str] = None,
                 sysfs_dir: Optional[str] = None, run_cmd=None, mock: bool = False):
        config = get_config()
        self.mock = mock
        self.dri_dir = Path(dri_dir or config.dri_dir)
        self.sysfs_dir = Path(sysfs_dir or config.drm_sysfs_dir)
        self.run_cmd = run_cmd or self._run

    def enumerate(self) -> List[GpuDevice]:
        """List card nodes, sorted lexicographically by node path."""
        if not self.dri_dir.is_dir():
            logger.debug(f"{self.dri_dir} does not exist")
            if self.mock:
                logger.info(f"MOCK: Assuming {MOCK_GPU.card} with {MOCK_GPU.render}")
                return [MOCK_GPU]
            return []

        cards = sorted(p for p in self.dri_dir.iterdir() if _CARD_RE.match(p.name))
        renders = sorted(p for p in self.dri_dir.iterdir() if _RENDER_RE.match(p.name))

        devices = []
        for card in cards:
            index = int(_CARD_RE.match(card.name).group(1))
            render = self._render_for(card.name)
            if render is None and len(renders) == 1:
                # Without sysfs the only render node is the only sane pairing
                render = str(renders[0])
            devices.append(GpuDevice(
                index=index,
                card=str(card),
                render=render,
                vendor=self._vendor_for(card.name),
                model=self._model_for(card.name),
            ))

        return devices

    def select(self, devices: List[GpuDevice], card: Optional[str] = None) -> GpuDevice:
        """Pick the card to pass through.

        Args:
            devices: Candidates from enumerate()
            card: Explicit choice as "card1", "/dev/dri/card1" or "1"

        Raises:
            MissingDevice: No candidates, or the explicit choice is not among them
            AmbiguousDevice: Several candidates and no explicit choice
        """
        if not devices:
            raise MissingDevice(
                f"No GPU card node found in {self.dri_dir}. "
                "Ensure the iGPU is enabled in BIOS and drivers are loaded on the host."
            )

        if card is not None:
            wanted = str(card).strip()
            for device in devices:
                if wanted in (device.card, device.name, str(device.index)):
                    return device
            raise MissingDevice(
                f"GPU card '{wanted}' not found; available: "
                + ", ".join(d.name for d in devices)
            )

        if len(devices) > 1:
            raise AmbiguousDevice([d.card for d in devices])

        return devices[0]

    # -----------------------------
    #  sysfs helpers
    # -----------------------------
    def _render_for(self, card_name: str) -> Optional[str]:
        drm_dir = self.sysfs_dir / card_name / "device" / "drm"
        if not drm_dir.is_dir():
            return None
        for entry in sorted(drm_dir.iterdir()):
            if _RENDER_RE.match(entry.name):
                return str(self.dri_dir / entry.name)
        return None

    def _vendor_for(self, card_name: str) -> str:
        vendor_file = self.sysfs_dir / card_name / "device" / "vendor"
        try:
            return VENDORS.get(vendor_file.read_text().strip().lower(), "unknown")
        except OSError:
            return "unknown"

    def _model_for(self, card_name: str) -> str:
        device_link = self.sysfs_dir / card_name / "device"
        try:
            slot = device_link.resolve().name
        except OSError:
            return ""
        if not re.match(r"^[0-9a-f]{4}:[0-9a-f]{2}:[0-9a-f]{2}\.[0-9a-f]$", slot):
            return ""
        output = self.run_cmd(f"lspci -s {slot}").strip()
        return output.split(":", 2)[-1].strip() if output else ""

    def _run(self, cmd: str) -> str:
        return subprocess.getoutput(cmd)
