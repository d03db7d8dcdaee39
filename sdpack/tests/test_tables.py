"""Unit tests for partition table writers."""

import dataclasses
import uuid
from pathlib import Path

import pytest

from sdpack.config import PackerConfig, SchemeConfig, get_preset
from sdpack.constants import (
    GPT_SIGNATURE,
    SECTOR_SIZE,
    GPTPartitionType,
    TableScheme,
)
from sdpack.errors import InputValidationError, TableWriteError
from sdpack.image import DiskImage
from sdpack.layout import DiskLayout, PartitionRequest, compute_layout
from sdpack.models import GPTHeader
from sdpack.tables import (
    NativeTableWriter,
    SfdiskTableWriter,
    SgdiskTableWriter,
    format_sfdisk_script,
    get_writer,
)

DISK_ID = 0x5D0A1234
DISK_GUID = uuid.UUID("6b1c2a8e-3f4d-4e5a-9b7c-0d1e2f3a4b5c")
ESP_GUID = uuid.UUID("11111111-2222-4333-8444-555555555555")
ROOT_GUID = uuid.UUID("66666666-7777-4888-9999-aaaaaaaaaaaa")


def get_layout(config: PackerConfig, requests: list[PartitionRequest]) -> DiskLayout:
    """Return layout for requests."""
    return compute_layout(config.scheme, requests)


def allocate(path: Path, layout: DiskLayout) -> DiskImage:
    """Return allocated image for layout."""
    image = DiskImage(path)
    image.allocate(layout.size)
    return image


def test_native_mbr(
    tmp_path: Path,
    dos_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test writing an MBR with the native writer."""
    layout = get_layout(dos_config, partition_requests)
    image = allocate(tmp_path / "disk.img", layout)
    NativeTableWriter(disk_id=DISK_ID).write(image.path, layout)
    info = image.get_info()
    assert info["scheme"] == "dos"
    assert info["disk_id"] == f"0x{DISK_ID:08x}"
    assert [
        (partition["start"], partition["sectors"], partition["type"])
        for partition in info["partitions"]
    ] == [(8192, 8192, "0xef"), (16384, 20480, "0x83")]
    assert info["partitions"][0]["bootable"]
    assert not info["partitions"][1]["bootable"]


def test_native_gpt(
    tmp_path: Path,
    sdcard_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test writing a GPT with the native writer."""
    layout = get_layout(sdcard_config, partition_requests)
    image = allocate(tmp_path / "disk.img", layout)
    NativeTableWriter(disk_guid=DISK_GUID).write(image.path, layout)
    info = image.get_info()
    assert info["scheme"] == "gpt"
    assert info["disk_guid"] == str(DISK_GUID)
    esp, rootfs = info["partitions"]
    assert (esp["start"], esp["sectors"], esp["name"]) == (8192, 8192, "ESP")
    assert esp["type"] == str(GPTPartitionType.EFI_SYSTEM.value)
    assert esp["guid"] == str(ESP_GUID)
    assert esp["attributes"] == 1 << 2
    assert (rootfs["start"], rootfs["sectors"], rootfs["name"]) == (
        16384,
        20480,
        "rootfs",
    )
    assert rootfs["guid"] == str(ROOT_GUID)
    assert rootfs["attributes"] == 0
    backup = GPTHeader.from_bytes(
        image.get_bytes((layout.total_sectors - 1) * SECTOR_SIZE, 92)
    )
    assert backup.signature == GPT_SIGNATURE
    assert backup.verify()
    assert backup.current_lba == layout.total_sectors - 1


def test_native_gpt_without_backup_room(
    tmp_path: Path,
    sdcard_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test GPT without room for the backup table fails."""
    layout = get_layout(sdcard_config, partition_requests)
    layout = dataclasses.replace(layout, total_sectors=layout.end_sector)
    image = allocate(tmp_path / "disk.img", layout)
    with pytest.raises(TableWriteError, match="does not fit"):
        NativeTableWriter().write(image.path, layout)


def test_native_random_identifiers(
    tmp_path: Path,
    dos_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test writer generates identifiers when none are specified."""
    layout = get_layout(dos_config, partition_requests)
    image = allocate(tmp_path / "disk.img", layout)
    NativeTableWriter().write(image.path, layout)
    assert image.mbr.verify()


def test_native_unallocated_image(
    tmp_path: Path,
    dos_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test writing into an image smaller than the layout fails."""
    layout = get_layout(dos_config, partition_requests)
    path = tmp_path / "disk.img"
    DiskImage(path).allocate(SECTOR_SIZE)
    with pytest.raises(TableWriteError, match="smaller"):
        NativeTableWriter().write(path, layout)


def test_sfdisk_script_sdcard(
    sdcard_config: PackerConfig, partition_requests: list[PartitionRequest]
) -> None:
    """Test sfdisk script for the SD card layout."""
    layout = get_layout(sdcard_config, partition_requests)
    script = format_sfdisk_script(layout, disk_guid=DISK_GUID)
    assert script == (
        "label: gpt\n"
        f"label-id: {str(DISK_GUID).upper()}\n"
        "unit: sectors\n"
        "sector-size: 512\n"
        "\n"
        "1 : start=8192, size=8192, type=C12A7328-F81F-11D2-BA4B-00A0C93EC93B, "
        f'name="ESP", uuid={str(ESP_GUID).upper()}, attrs="LegacyBIOSBootable"\n'
        "2 : start=16384, size=20480, type=0FC63DAF-8483-4772-8E79-3D69D8477DE4, "
        f'name="rootfs", uuid={str(ROOT_GUID).upper()}\n'
    )


def test_sfdisk_script_dos(
    dos_config: PackerConfig, partition_requests: list[PartitionRequest]
) -> None:
    """Test sfdisk script for an MBR layout."""
    layout = get_layout(dos_config, partition_requests)
    script = format_sfdisk_script(layout, disk_id=DISK_ID)
    assert script == (
        "label: dos\n"
        f"label-id: 0x{DISK_ID:08x}\n"
        "unit: sectors\n"
        "sector-size: 512\n"
        "\n"
        "1 : start=8192, size=8192, type=ef, bootable\n"
        "2 : start=16384, size=20480, type=83\n"
    )


def test_sfdisk_script_first_lba(partition_requests: list[PartitionRequest]) -> None:
    """Test sfdisk script lowers the first usable sector when required."""
    scheme = SchemeConfig(
        scheme=TableScheme.GPT, alignment=512, first_sector=34, trailing_sectors=34
    )
    script = format_sfdisk_script(compute_layout(scheme, partition_requests))
    assert "first-lba: 34\n" in script
    assert "1 : start=34," in script


def test_sfdisk_invalid_name(
    sdcard_config: PackerConfig, esp_blob: Path
) -> None:
    """Test names which cannot be quoted are rejected."""
    layout = get_layout(sdcard_config, [PartitionRequest(esp_blob, name='a"b')])
    with pytest.raises(TableWriteError):
        format_sfdisk_script(layout)


def test_sfdisk_writer(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    dos_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test sfdisk is run with the script on standard input."""
    calls = []
    monkeypatch.setattr(
        "sdpack.tables.sfdisk.run_process",
        lambda *args, **kwargs: calls.append((args, kwargs)) or "",
    )
    layout = get_layout(dos_config, partition_requests)
    path = tmp_path / "disk.img"
    SfdiskTableWriter(disk_id=DISK_ID).write(path, layout)
    (args, kwargs), = calls
    assert args[0] == ["sfdisk", "--no-reread", "--no-tell-kernel", str(path)]
    assert kwargs["input"] == format_sfdisk_script(layout, disk_id=DISK_ID).encode()


def test_sgdisk_command(
    tmp_path: Path,
    sdcard_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test sgdisk command creates, types and names each partition."""
    layout = get_layout(sdcard_config, partition_requests)
    path = tmp_path / "disk.img"
    command = SgdiskTableWriter(disk_guid=DISK_GUID).get_command(path, layout)
    assert command == [
        "sgdisk",
        "--clear",
        "--set-alignment=1",
        f"--disk-guid={DISK_GUID}",
        "--new=1:8192:16383",
        "--typecode=1:EF00",
        "--change-name=1:ESP",
        f"--partition-guid=1:{ESP_GUID}",
        "--attributes=1:set:2",
        "--new=2:16384:36863",
        "--typecode=2:8300",
        "--change-name=2:rootfs",
        f"--partition-guid=2:{ROOT_GUID}",
        str(path),
    ]


def test_sgdisk_unknown_type(tmp_path: Path, esp_blob: Path) -> None:
    """Test sgdisk receives full GUIDs for types without a short code."""
    guid = uuid.UUID("a19d880f-05fc-4d3b-a006-743f0f84911e")
    layout = compute_layout(
        get_preset("gpt").scheme, [PartitionRequest(esp_blob, str(guid))]
    )
    command = SgdiskTableWriter().get_command(tmp_path / "disk.img", layout)
    assert f"--typecode=1:{str(guid).upper()}" in command


def test_sgdisk_dos(
    tmp_path: Path,
    dos_config: PackerConfig,
    partition_requests: list[PartitionRequest],
) -> None:
    """Test sgdisk cannot write MBR tables."""
    layout = get_layout(dos_config, partition_requests)
    with pytest.raises(TableWriteError, match="does not support"):
        SgdiskTableWriter().write(tmp_path / "disk.img", layout)


def test_get_writer() -> None:
    """Test looking up table writers by name."""
    assert isinstance(get_writer("native"), NativeTableWriter)
    assert get_writer("sfdisk", disk_id=1).disk_id == 1
    assert SgdiskTableWriter.REQUIRED_TOOLS == ("sgdisk",)
    with pytest.raises(InputValidationError):
        get_writer("fdisk")


def test_libparted_gpt(
    tmp_path: Path, partition_requests: list[PartitionRequest]
) -> None:
    """Test writing a GPT with libparted."""
    pytest.importorskip("parted")
    from sdpack.tables.libparted import LibpartedTableWriter

    layout = compute_layout(get_preset("gpt").scheme, partition_requests)
    image = allocate(tmp_path / "disk.img", layout)
    LibpartedTableWriter().write(image.path, layout)
    esp, rootfs = image.get_partitions()
    assert (esp["start"], esp["sectors"], esp["name"]) == (2048, 8192, "ESP")
    assert esp["type"] == str(GPTPartitionType.EFI_SYSTEM.value)
    assert (rootfs["start"], rootfs["sectors"]) == (10240, 20480)
    assert rootfs["type"] == str(GPTPartitionType.LINUX_FILESYSTEM.value)
