"""Declarative register map types.

A register map is a list of read blocks. Each block is fetched with a single
``read_holding_registers`` call and carries the points decoded from it.
Maps are plain data: new device variants are added by declaring another map
(or loading one from JSON), not by touching decode logic.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from app.core.decoder import WordOrder

Labels = Tuple[Tuple[str, str], ...]

SUPPORTED_WIDTHS = (16, 32)


def normalize_labels(labels: Mapping[str, str] | Labels | None) -> Labels:
    """Return labels as a sorted tuple of ``(key, value)`` pairs."""
    if not labels:
        return ()
    items = labels.items() if isinstance(labels, Mapping) else labels
    return tuple(sorted((str(k), str(v)) for k, v in items))


@dataclass(frozen=True)
class RegisterPoint:
    """One telemetry point inside a read block.

    ``offset`` is relative to the start of the owning block; ``word_order``
    left as ``None`` means the deployment-wide setting applies.
    """

    id: str
    metric: str
    offset: int
    width: int = 16
    scale: float = 1
    unit: str = ""
    help: str = ""
    labels: Labels = ()
    word_order: Optional[WordOrder] = None

    def __post_init__(self) -> None:
        if self.width not in SUPPORTED_WIDTHS:
            raise ValueError(f"Point '{self.id}': unsupported width {self.width}")
        if self.offset < 0:
            raise ValueError(f"Point '{self.id}': offset must be non-negative")
        if isinstance(self.scale, bool) or not isinstance(self.scale, (int, float)):
            raise ValueError(f"Point '{self.id}': scale must be a number, got {self.scale!r}")
        if not self.scale:
            raise ValueError(f"Point '{self.id}': scale must be non-zero")
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "labels", normalize_labels(self.labels))
        if self.word_order is not None and not isinstance(self.word_order, WordOrder):
            object.__setattr__(self, "word_order", WordOrder(self.word_order))

    @property
    def words(self) -> int:
        return self.width // 16

    @property
    def label_dict(self) -> Dict[str, str]:
        return dict(self.labels)

    @property
    def label_names(self) -> Tuple[str, ...]:
        return tuple(k for k, _ in self.labels)


@dataclass(frozen=True)
class ReadBlock:
    """A contiguous register range read in one round-trip."""

    name: str
    address: int
    count: int
    points: Tuple[RegisterPoint, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        if self.address < 0:
            raise ValueError(f"Block '{self.name}': address must be non-negative")
        if not 1 <= self.count <= 125:
            raise ValueError(f"Block '{self.name}': count must be between 1 and 125")

        next_free = 0
        for point in self.points:
            if point.offset < next_free:
                raise ValueError(
                    f"Block '{self.name}': point '{point.id}' at offset {point.offset} "
                    f"overlaps or precedes the previous point"
                )
            next_free = point.offset + point.words
            if next_free > self.count:
                raise ValueError(
                    f"Block '{self.name}': point '{point.id}' needs {next_free} words, "
                    f"block only reads {self.count}"
                )

    @property
    def end(self) -> int:
        """First address after this block."""
        return self.address + self.count

    def address_of(self, point: RegisterPoint) -> int:
        return self.address + point.offset


@dataclass(frozen=True)
class RegisterMap:
    """An ordered, validated set of read blocks for one device family."""

    name: str
    version: str
    blocks: Tuple[ReadBlock, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "blocks", tuple(self.blocks))
        self._validate()

    def _validate(self) -> None:
        previous: Optional[ReadBlock] = None
        block_names = set()
        point_ids = set()
        series = set()
        metrics: Dict[str, RegisterPoint] = {}

        for block in self.blocks:
            if block.name in block_names:
                raise ValueError(f"Duplicate block name '{block.name}'")
            block_names.add(block.name)
            if previous is not None and block.address < previous.end:
                raise ValueError(
                    f"Block '{block.name}' at {block.address} overlaps or precedes "
                    f"block '{previous.name}' ending at {previous.end}"
                )
            previous = block

            for point in block.points:
                if point.id in point_ids:
                    raise ValueError(f"Duplicate point id '{point.id}'")
                point_ids.add(point.id)

                key = (point.metric, point.labels)
                if key in series:
                    raise ValueError(
                        f"Duplicate series {point.metric}{point.label_dict} (point '{point.id}')"
                    )
                series.add(key)

                first = metrics.setdefault(point.metric, point)
                if first.label_names != point.label_names:
                    raise ValueError(
                        f"Metric '{point.metric}' has inconsistent label names: "
                        f"{first.label_names} vs {point.label_names}"
                    )
                if first.unit != point.unit or first.help != point.help:
                    raise ValueError(
                        f"Metric '{point.metric}' has inconsistent unit or help text"
                    )

    def __iter__(self) -> Iterator[ReadBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def points(self) -> List[RegisterPoint]:
        return [point for block in self.blocks for point in block.points]

    def metric_families(self) -> List[RegisterPoint]:
        """First point of every distinct metric, in declaration order."""
        seen: Dict[str, RegisterPoint] = {}
        for point in self.points:
            seen.setdefault(point.metric, point)
        return list(seen.values())

    def block(self, name: str) -> ReadBlock:
        for block in self.blocks:
            if block.name == name:
                return block
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "blocks": [
                {
                    "name": block.name,
                    "address": block.address,
                    "count": block.count,
                    "points": [
                        {
                            "id": p.id,
                            "metric": p.metric,
                            "offset": p.offset,
                            "address": block.address_of(p),
                            "width": p.width,
                            "scale": p.scale,
                            "unit": p.unit,
                            "help": p.help,
                            "labels": p.label_dict,
                            "word_order": p.word_order.value if p.word_order else None,
                        }
                        for p in block.points
                    ],
                }
                for block in self.blocks
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RegisterMap":
        """Build a map from the structure produced by ``to_dict``.

        Field types are checked and coerced before any block is built, so a
        map that loads can always be decoded. The per-point ``address`` key is
        informational and ignored.
        """
        try:
            document = RegisterMapDocument.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid register map: {_describe_errors(exc)}") from exc

        blocks = [
            ReadBlock(
                name=raw_block.name,
                address=raw_block.address,
                count=raw_block.count,
                points=tuple(
                    RegisterPoint(
                        id=raw_point.id,
                        metric=raw_point.metric,
                        offset=raw_point.offset,
                        width=raw_point.width,
                        scale=raw_point.scale,
                        unit=raw_point.unit,
                        help=raw_point.help,
                        labels=normalize_labels(raw_point.labels),
                        word_order=raw_point.word_order,
                    )
                    for raw_point in raw_block.points
                ),
            )
            for raw_block in document.blocks
        ]
        return cls(name=document.name, version=str(document.version), blocks=tuple(blocks))

    @classmethod
    def from_json_file(cls, path: str | Path) -> "RegisterMap":
        with open(path, encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))


# JSON document models for externally supplied maps.

class RegisterPointDocument(BaseModel):
    id: str
    metric: str
    offset: int = Field(..., ge=0)
    width: int = 16
    scale: float = 1.0
    unit: str = ""
    help: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    word_order: Optional[WordOrder] = None


class ReadBlockDocument(BaseModel):
    name: str
    address: int = Field(..., ge=0)
    count: int
    points: List[RegisterPointDocument] = Field(default_factory=list)


class RegisterMapDocument(BaseModel):
    name: str = "custom"
    version: Union[str, int, float] = "0"
    blocks: List[ReadBlockDocument]


def _describe_errors(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        if error["type"] == "missing":
            problems.append(f"missing required field '{location}'")
        else:
            problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)
