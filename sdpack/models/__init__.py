"""Data models for partition table structures."""

from sdpack.models.base import BaseDataModel
from sdpack.models.collections import DataModelCollection
from sdpack.models.gpt import GPTHeader, GPTPartitionEntry, GUIDPartitionTable
from sdpack.models.mbr import MasterBootRecord, MBRPartitionEntry
from sdpack.models.mixins import CRCMixin

__all__ = [
    "BaseDataModel",
    "CRCMixin",
    "DataModelCollection",
    "GPTHeader",
    "GPTPartitionEntry",
    "GUIDPartitionTable",
    "MBRPartitionEntry",
    "MasterBootRecord",
]
