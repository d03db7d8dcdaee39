"""Testing configuration."""

import uuid
from collections.abc import Callable
from pathlib import Path

import pytest

from sdpack.config import PackerConfig, get_preset
from sdpack.constants import MIB
from sdpack.layout import PartitionRequest

DISK_ID = 0x5D0A1234
DISK_GUID = uuid.UUID("6b1c2a8e-3f4d-4e5a-9b7c-0d1e2f3a4b5c")
ESP_GUID = uuid.UUID("11111111-2222-4333-8444-555555555555")
ROOT_GUID = uuid.UUID("66666666-7777-4888-9999-aaaaaaaaaaaa")
ROOT_UUID = "2a7d8e6c-1f3b-4c5d-8e9f-0a1b2c3d4e5f"


def get_pattern(size: int, seed: int = 0) -> bytes:
    """Return deterministic non-zero data of size."""
    block = bytes((seed + index) % 255 + 1 for index in range(256))
    return (block * (size // len(block) + 1))[:size]


@pytest.fixture()
def make_blob(tmp_path: Path) -> Callable[..., Path]:
    """Return factory to create input images of a given size."""

    def factory(name: str, size: int, seed: int = 0) -> Path:
        directory = tmp_path / "input"
        directory.mkdir(exist_ok=True)
        path = directory / name
        path.write_bytes(get_pattern(size, seed))
        return path

    return factory


@pytest.fixture()
def esp_blob(make_blob: Callable[..., Path]) -> Path:
    """Return path to 4 MiB ESP image."""
    return make_blob("esp.img", 4 * MIB, seed=1)


@pytest.fixture()
def rootfs_blob(make_blob: Callable[..., Path]) -> Path:
    """Return path to 10 MiB rootfs image."""
    return make_blob("rootfs.img", 10 * MIB, seed=2)


@pytest.fixture()
def output_dir(tmp_path: Path) -> Path:
    """Return empty directory for output images."""
    directory = tmp_path / "output"
    directory.mkdir()
    return directory


@pytest.fixture()
def partition_requests(esp_blob: Path, rootfs_blob: Path) -> list[PartitionRequest]:
    """Return requests for an ESP and a rootfs partition."""
    return [
        PartitionRequest(
            path=esp_blob, partition_type="uefi", name="ESP", partition_guid=ESP_GUID
        ),
        PartitionRequest(
            path=rootfs_blob,
            partition_type="linux-filesystem",
            name="rootfs",
            partition_guid=ROOT_GUID,
        ),
    ]


@pytest.fixture()
def dos_config() -> PackerConfig:
    """Return MBR configuration using the native table writer."""
    return get_preset("dos").replace(table_writer="native", disk_id=DISK_ID)


@pytest.fixture()
def gpt_config() -> PackerConfig:
    """Return GPT configuration using the native table writer."""
    return get_preset("gpt").replace(table_writer="native", disk_guid=DISK_GUID)


@pytest.fixture()
def sdcard_config() -> PackerConfig:
    """Return SD card configuration using the native table writer."""
    return get_preset("sdcard").replace(table_writer="native", disk_guid=DISK_GUID)
