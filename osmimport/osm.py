"""Basic OSM element types: nodes, ways, relations and relation members."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional


class MemberType(enum.IntEnum):
    """Kind of element a relation member refers to."""

    NODE = 0
    WAY = 1
    RELATION = 2


@dataclass
class Node:
    """A node with WGS84 (or projected) coordinates and tags."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    long: float = 0.0
    lat: float = 0.0


@dataclass
class Way:
    """A way: an ordered list of node references, optionally resolved into nodes."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    refs: list[int] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)


@dataclass
class Member:
    """A member of a relation."""

    id: int = 0
    type: MemberType = MemberType.NODE
    role: str = ""
    way: Optional[Way] = None


@dataclass
class Relation:
    """A relation with tags and an ordered list of members."""

    id: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    members: list[Member] = field(default_factory=list)