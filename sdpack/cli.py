"""Command-line interface for disk image packing operations."""

import json
import logging
import os
import signal
import sys
import uuid
from argparse import ArgumentParser, BooleanOptionalAction, Namespace
from pathlib import Path
from pprint import pprint
from typing import Any

from sdpack.config import DEFAULT_PRESET, PRESETS, PackerConfig, get_preset, load_config
from sdpack.constants import TableScheme
from sdpack.errors import InputValidationError, PackError, ToolExecutionError
from sdpack.esp import EspBuilder, EspOptions, GrubConfig
from sdpack.image import DiskImage
from sdpack.layout import PartitionRequest
from sdpack.packer import ImagePacker
from sdpack.tables import WRITER_NAMES
from sdpack.utils import parse_size

LOG = logging.getLogger(__name__)

SD_PRESET = "sdcard"
SD_ESP_NAME = "ESP"


def get_parser() -> ArgumentParser:
    """Return argument parser instance."""
    parser = ArgumentParser(
        prog="sdpack",
        description="Pack filesystem images into partitioned disk images",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="increase verbosity"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="only report errors"
    )
    subparsers = parser.add_subparsers(
        dest="command", help="action to perform", required=True
    )

    layout_options = ArgumentParser(add_help=False)
    layout_options.add_argument("--preset", choices=PRESETS, help="base configuration")
    layout_options.add_argument("--config", help="path to configuration file")
    layout_options.add_argument(
        "--scheme", choices=[scheme.value for scheme in TableScheme], help="partition table scheme"
    )
    layout_options.add_argument("--alignment", help="partition alignment, e.g. 4M")
    layout_options.add_argument(
        "--first-sector", type=int, help="start sector of the first partition"
    )
    layout_options.add_argument(
        "--trailing-sectors", type=int, help="sectors reserved after alignment padding"
    )
    layout_options.add_argument(
        "--esp-bootable",
        action=BooleanOptionalAction,
        help="mark EFI System partitions bootable",
    )
    pack_options = ArgumentParser(add_help=False)
    pack_options.add_argument(
        "--table-writer", choices=WRITER_NAMES, help="tool to write partition table"
    )
    pack_options.add_argument(
        "--sudo",
        action=BooleanOptionalAction,
        dest="use_sudo",
        help="run filesystem UUID rewrite through sudo",
    )
    pack_options.add_argument("--disk-guid", help="GPT disk GUID")
    pack_options.add_argument("--disk-id", help="MBR disk identifier, e.g. 0x1234abcd")

    parser_pack = subparsers.add_parser(
        "pack",
        help="pack images into a disk image",
        parents=[layout_options, pack_options],
    )
    parser_pack.add_argument("output", help="path to write disk image")
    parser_pack.add_argument(
        "-p",
        "--partition",
        action="append",
        required=True,
        dest="partitions",
        metavar="PATH[:TYPE[:NAME[:FS_UUID]]]",
        help="image for next partition (repeat in table order)",
    )
    parser_sd = subparsers.add_parser(
        "sd",
        help="pack ESP and rootfs images into an SD card image",
        parents=[layout_options, pack_options],
    )
    parser_sd.add_argument("esp", help="path to ESP FAT image")
    parser_sd.add_argument("rootfs", help="path to ext4 rootfs image to embed")
    parser_sd.add_argument("output", help="path to resulting SD card image")
    parser_sd.add_argument(
        "root_uuid", help="filesystem UUID to set on the rootfs image"
    )
    parser_sd.add_argument(
        "root_partlabel", help="partition label of the rootfs partition"
    )
    parser_layout = subparsers.add_parser(
        "layout", help="display computed partition layout", parents=[layout_options]
    )
    parser_layout.add_argument(
        "-p",
        "--partition",
        action="append",
        required=True,
        dest="partitions",
        metavar="PATH[:TYPE[:NAME[:FS_UUID]]]",
        help="image for next partition (repeat in table order)",
    )
    parser_layout.add_argument(
        "--json", action="store_true", help="format result as JSON"
    )
    parser_info = subparsers.add_parser(
        "info", help="display partition table of a disk image"
    )
    parser_info.add_argument("image", help="path to disk image")
    parser_info.add_argument(
        "--json", action="store_true", help="format result as JSON"
    )
    parser_esp = subparsers.add_parser("esp", help="build ESP image from GRUB tree")
    parser_esp.add_argument("source", help="GRUB ESP directory or tarball")
    parser_esp.add_argument("output", help="path to write ESP image")
    parser_esp.add_argument("--size", default="32M", help="size of ESP image")
    parser_esp.add_argument("--root-uuid", required=True, help="rootfs UUID")
    parser_esp.add_argument("--device-tree", required=True, help="device tree name")
    parser_esp.add_argument("--partlabel", required=True, help="rootfs partition label")
    parser_esp.add_argument("--label", default="LOGFS", help="FAT volume label")
    parser_esp.add_argument(
        "--compress", action="store_true", help="also write a 7z archive"
    )
    return parser


def configure_logging(args: Namespace) -> None:
    """Configure logging level from verbosity arguments."""
    if args.quiet:
        level = logging.ERROR
    elif args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def get_overrides(args: Namespace) -> dict[str, Any]:
    """Return configuration values given on the command line."""
    overrides: dict[str, Any] = {}
    if getattr(args, "scheme", None):
        overrides["scheme"] = TableScheme(args.scheme)
    if getattr(args, "alignment", None):
        overrides["alignment"] = parse_size(args.alignment)
    for name in (
        "first_sector",
        "trailing_sectors",
        "esp_bootable",
        "table_writer",
        "use_sudo",
    ):
        if getattr(args, name, None) is not None:
            overrides[name] = getattr(args, name)
    if getattr(args, "disk_guid", None):
        try:
            overrides["disk_guid"] = uuid.UUID(args.disk_guid)
        except ValueError:
            raise InputValidationError(f"Invalid disk GUID '{args.disk_guid}'") from None
    if getattr(args, "disk_id", None):
        try:
            overrides["disk_id"] = int(args.disk_id, 0)
        except ValueError:
            raise InputValidationError(f"Invalid disk identifier '{args.disk_id}'") from None
    return overrides


def get_config(args: Namespace, preset: str = DEFAULT_PRESET) -> PackerConfig:
    """Return packer configuration from preset, configuration file and arguments."""
    config = get_preset(args.preset or preset)
    if args.config:
        config = load_config(args.config, config)
    return config.replace(**get_overrides(args))


def get_sd_requests(args: Namespace) -> list[PartitionRequest]:
    """Return partition requests for the SD card layout."""
    return [
        PartitionRequest(path=Path(args.esp), partition_type="uefi", name=SD_ESP_NAME),
        PartitionRequest(
            path=Path(args.rootfs),
            partition_type="linux-filesystem",
            name=args.root_partlabel,
            fs_uuid=args.root_uuid,
        ),
    ]


def print_result(data: Any, as_json: bool) -> None:
    """Print data as JSON or pretty-printed."""
    if as_json:
        print(json.dumps(data))
    else:
        pprint(data)


def raise_system_exit(signum: int, frame: Any) -> None:
    """Signal handler to exit normally, so cleanup handlers run."""
    raise SystemExit(128 + signum)


def run(args: Namespace) -> None:
    """Perform command for parsed arguments."""
    match args.command:
        case "pack":
            requests = [PartitionRequest.parse(value) for value in args.partitions]
            ImagePacker(get_config(args)).pack(requests, args.output)
        case "sd":
            config = get_config(args, preset=SD_PRESET)
            if args.use_sudo is None and not args.config:
                # tune2fs needs root privileges on images owned by root
                config = config.replace(use_sudo=os.geteuid() != 0)
            ImagePacker(config).pack(get_sd_requests(args), args.output)
        case "layout":
            requests = [PartitionRequest.parse(value) for value in args.partitions]
            layout = ImagePacker(get_config(args)).get_layout(requests)
            print_result(layout.to_dict(), args.json)
        case "info":
            try:
                info = DiskImage(args.image).get_info()
            except OSError as error:
                raise InputValidationError(
                    f"Unable to read disk image '{args.image}': {error.strerror}"
                ) from error
            except ValueError as error:
                raise InputValidationError(str(error)) from error
            print_result(info, args.json)
        case "esp":
            options = EspOptions(
                size=parse_size(args.size), label=args.label, compress=args.compress
            )
            grub_config = GrubConfig(
                root_uuid=args.root_uuid,
                device_tree=args.device_tree,
                partlabel=args.partlabel,
            )
            EspBuilder(options).build(args.source, args.output, grub_config)
        case _:
            # argparse should catch this, so do not handle gracefully
            raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and perform command, exiting non-zero on failure."""
    parser = get_parser()
    args = parser.parse_args(argv)
    configure_logging(args)
    signal.signal(signal.SIGTERM, raise_system_exit)
    try:
        run(args)
    except ToolExecutionError as error:
        if error.stderr:
            print(error.stderr, file=sys.stderr)
        print(f"Error: {error}", file=sys.stderr)
        sys.exit(1)
    except PackError as error:
        print(f"Error: {error}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
