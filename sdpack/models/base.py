"""Concrete base classes for various data models."""

import io
from abc import ABC
from dataclasses import Field, dataclass, fields
from pathlib import Path
from typing import Any, ClassVar, Iterator, get_args, get_origin

from sdpack.models.collections import DataModelCollection
from sdpack.utils import replace_bytes


@dataclass
class BaseDataModel(ABC):
    """
    Abstract base class for data model.

    Integers are stored little-endian, as both MBR and GPT structures are.
    """

    MODEL_ATTRIBUTE_SIZES: ClassVar[dict[str, int]]
    DEFAULT_VALUES: ClassVar[dict[str, Any]]

    def __len__(self) -> int:
        """Implement __len__ data model method."""
        return self.get_actual_size()

    @staticmethod
    def convert_to_bytes(data: Any, size: int) -> bytes:
        """Return bytes of data for attribute of size."""
        match data:
            case bytes():
                if len(data) != size:
                    raise ValueError(
                        f"Length of data '{len(data)}' does not match size '{size}'"
                    )
                return data
            case int():
                return data.to_bytes(size, byteorder="little")
            case BaseDataModel() | DataModelCollection():
                return data.to_bytes()
            case _:
                raise TypeError(f"Unable to convert type '{type(data).__name__}'")

    def to_bytes(self) -> bytes:
        """Return bytes of all data."""
        with io.BytesIO() as fd:
            for field in self.fields(init_only=False):
                data = getattr(self, field.name)
                try:
                    size = self.get_attribute_size(field.name)
                except KeyError:
                    continue
                fd.write(self.convert_to_bytes(data, size))
            fd.seek(0)
            return fd.read()

    def write(self, path: str | Path, offset: int = 0) -> int:
        """Write data of model to offset of existing file, returning written bytes."""
        with open(path, "r+b") as fd:
            fd.seek(offset)
            return fd.write(self.to_bytes())

    def get_actual_size(self) -> int:
        """Return actual size of all data."""
        return len(self.to_bytes())

    @classmethod
    def get_model_size(cls: type["BaseDataModel"]) -> int:
        """Return expected total size of data for model."""
        return sum(cls.MODEL_ATTRIBUTE_SIZES.values())

    @classmethod
    def get_attribute_size(cls: type["BaseDataModel"], name: str) -> int:
        """Return size of data for attribute."""
        return cls.MODEL_ATTRIBUTE_SIZES[name]

    @classmethod
    def get_attribute_offset(cls: type["BaseDataModel"], name: str) -> int:
        """Return offset of bytes for attribute."""
        offset = 0
        for attribute, size in cls.MODEL_ATTRIBUTE_SIZES.items():
            if attribute == name:
                return offset
            offset += size
        else:
            raise KeyError(f"Attribute '{name}' not found")

    def verify(self) -> bool:
        """Verify data model integrity."""
        result = self.get_actual_size() == self.get_model_size()
        try:
            result = result and super().verify()
        except AttributeError:
            pass
        return result

    @classmethod
    def from_bytes_to_dict(cls: type["BaseDataModel"], data: bytes) -> dict[str, bytes]:
        """
        Return dictionary from bytes.

        Raises a ValueError if data is too short to create model.
        """
        if len(data) < cls.get_model_size():
            raise ValueError(
                f"Length of data '{len(data)}' "
                f"is shorter than model size '{cls.get_model_size()}'"
            )
        model = {}
        with io.BytesIO(data) as fd:
            for field in cls.fields(init_only=True):
                model[field.name] = fd.read(cls.get_attribute_size(field.name))
        return model

    @staticmethod
    def from_field(data: bytes, field: Field) -> Any:
        """Return instance of field type from data."""
        if get_origin(field.type) == DataModelCollection:
            inner = get_args(field.type)[0]
            return DataModelCollection(
                inner.from_bytes(chunk)
                for chunk in [
                    data[i : i + inner.get_model_size()]
                    for i in range(0, len(data), inner.get_model_size())
                ]
            )
        elif issubclass(field.type, BaseDataModel):
            return field.type.from_bytes(data)
        elif field.type == int:
            return int.from_bytes(data, byteorder="little")
        else:
            return field.type(data)

    @classmethod
    def from_bytes(cls: type["BaseDataModel"], data: bytes) -> "BaseDataModel":
        """Return data model instance from bytes."""
        model = cls.from_bytes_to_dict(data)
        for field in cls.fields(init_only=True):
            model[field.name] = cls.from_field(model[field.name], field)
        return cls(**model)

    @classmethod
    def from_bytes_with_remaining(
        cls: type["BaseDataModel"], data: bytes
    ) -> tuple["BaseDataModel", bytes]:
        """Return data model instance and remaining data from bytes."""
        return (cls.from_bytes(data), data[cls.get_model_size() :])

    @classmethod
    def _get_default_bytes(cls: type["BaseDataModel"]) -> bytes:
        """Return default bytes for new data model."""
        data = bytes(cls.get_model_size())
        if not hasattr(cls, "DEFAULT_VALUES"):
            return data
        for name, value in cls.DEFAULT_VALUES.items():
            if callable(value):
                value = value()
            offset = cls.get_attribute_offset(name)
            size = cls.get_attribute_size(name)
            data = replace_bytes(data, cls.convert_to_bytes(value, size), offset)
        return data

    @classmethod
    def new(cls: type["BaseDataModel"]) -> "BaseDataModel":
        """Return new data model instance with default data."""
        return cls.from_bytes(cls._get_default_bytes())

    @classmethod
    def fields(cls: type["BaseDataModel"], init_only: bool = True) -> Iterator[Field]:
        """
        Return iterator of fields for dataclass.

        If init_only, only include fields with parameters in __init__ method.
        """
        for field in fields(cls):
            if init_only and not field.init:
                continue
            yield field
