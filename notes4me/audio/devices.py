"""Detection of the virtual loopback device that exposes system audio."""

import logging
import subprocess
from typing import List, Optional, Sequence

from ..errors import DeviceNotFoundError

logger = logging.getLogger(__name__)

# Preference order: the first variant present in the registry wins.
DEVICE_NAME_VARIANTS = [
    "BlackHole 2ch",
    "BlackHole2ch",
    "BlackHole 16ch",
    "BlackHole",
]

AUDIO_REGISTRY_COMMAND = ["system_profiler", "SPAudioDataType"]
SOX_DEVICE_LIST_COMMAND = ["sox", "--list-devices"]

DEVICE_SETUP_INSTRUCTIONS = (
    "BlackHole audio device not detected.\n"
    "Install BlackHole 2ch from: https://github.com/ExistentialAudio/BlackHole\n"
    "After installation:\n"
    "  1. Open Audio MIDI Setup\n"
    "  2. Create a Multi-Output Device\n"
    "  3. Check both your speakers and BlackHole 2ch\n"
    "  4. Set the Multi-Output Device as the system default"
)


def read_audio_registry(command: Sequence[str] = AUDIO_REGISTRY_COMMAND) -> str:
    """Return the platform audio registry listing as text.

    Raises:
        DeviceNotFoundError: If the registry command cannot be run
    """
    try:
        result = subprocess.run(
            list(command),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=15,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise DeviceNotFoundError(
            f"Failed to detect audio devices: {e}\n{DEVICE_SETUP_INSTRUCTIONS}") from e
    return result.stdout or ""


def match_device(registry_output: str, variants: Sequence[str] = DEVICE_NAME_VARIANTS) -> Optional[str]:
    """Pick the first name variant that appears (case-insensitively) in the listing."""
    haystack = registry_output.lower()
    for name in variants:
        if name.lower() in haystack:
            return name
    return None


def find_capture_device(variants: Sequence[str] = DEVICE_NAME_VARIANTS) -> str:
    """Resolve the capture device display name to hand to sox.

    Raises:
        DeviceNotFoundError: If no known variant appears in the audio registry
    """
    logger.info("Detecting BlackHole audio device...")
    device = match_device(read_audio_registry(), variants)
    if device is None:
        raise DeviceNotFoundError(DEVICE_SETUP_INSTRUCTIONS)
    logger.info(f"Using audio device: {device}")
    return device


def list_audio_devices() -> List[str]:
    """List quoted device names reported by sox. Best effort, [] on failure."""
    try:
        result = subprocess.run(
            SOX_DEVICE_LIST_COMMAND,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=15,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.error(f"Failed to list audio devices: {e}")
        return []

    names = []
    for line in result.stdout.splitlines():
        if not line.strip() or "AUDIO DRIVERS" in line or "---" in line:
            continue
        parts = line.split('"')
        if len(parts) >= 3:
            names.append(parts[1])
    return names
