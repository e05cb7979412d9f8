#!/usr/bin/env python3
"""
Alma entity snapshots.

Only the fields the toolkit needs for scheduling and reporting are kept. All
entities are immutable once parsed.
"""

from dataclasses import dataclass
from typing import Any, TypeAlias

AlmaJSON: TypeAlias = dict[str, Any]


def _value(field: Any) -> str:
    """Alma wraps code-table fields as {"value": ..., "desc": ...}."""
    if isinstance(field, dict):
        return str(field.get("value", ""))
    return "" if field is None else str(field)


@dataclass(frozen=True)
class AlmaSet:
    """A set configured in Alma."""

    id: str
    name: str
    type: str
    content: str
    number_of_members: int
    link: str = ""

    @classmethod
    def from_json(cls, data: AlmaJSON) -> "AlmaSet":
        members = data.get("number_of_members") or {}
        count = members.get("value", 0) if isinstance(members, dict) else members
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            type=_value(data.get("type")),
            content=_value(data.get("content")),
            number_of_members=int(count or 0),
            link=data.get("link", ""),
        )

    @property
    def is_itemized_item_set(self) -> bool:
        return self.type == "ITEMIZED" and self.content == "ITEM"


@dataclass(frozen=True)
class SetMember:
    """A member of a set. For item sets the link points at the item."""

    id: str
    description: str
    link: str

    @classmethod
    def from_json(cls, data: AlmaJSON) -> "SetMember":
        return cls(id=str(data["id"]), description=data.get("description", ""), link=data.get("link", ""))


@dataclass(frozen=True)
class UserRequest:
    """A user request placed on an item."""

    request_id: str
    type: str
    sub_type: str
    status: str
    link: str
    title: str = ""
    barcode: str = ""

    @classmethod
    def from_json(cls, data: AlmaJSON, item_link: str) -> "UserRequest":
        request_id = str(data["request_id"])
        return cls(
            request_id=request_id,
            type=data.get("request_type", ""),
            sub_type=_value(data.get("request_sub_type")),
            status=data.get("request_status", ""),
            link=f"{item_link.rstrip('/')}/requests/{request_id}",
            title=data.get("title", ""),
            barcode=data.get("barcode", ""),
        )

    def matches(self, request_type: str = "", sub_type: str = "") -> bool:
        """True if the request has the given type and sub type; empty filters match anything."""
        if request_type and self.type != request_type:
            return False
        if sub_type and self.sub_type != sub_type:
            return False
        return True


@dataclass(frozen=True)
class CodeTableRow:
    """One row of an Alma code table."""

    code: str
    description: str

    @classmethod
    def from_json(cls, data: AlmaJSON) -> "CodeTableRow":
        return cls(code=data.get("code", ""), description=data.get("description", ""))
