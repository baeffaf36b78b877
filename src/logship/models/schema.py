"""Pydantic models for the remote repo schema served by the delivery endpoint.

Mirrors the endpoint's JSON shape, so a client can hand the decoded
response straight to ``RemoteSchema.model_validate``:

    {
        "schema": [
            {"key": "ab", "valueType": "string", "required": true},
            {"key": "a1", "valueType": "float"},
            {"key": "x4", "valueType": "array", "elemtype": "float"},
            {"key": "x5", "valueType": "map", "schema": [
                {"key": "x6", "valueType": "long"}
            ]}
        ]
    }

Models are frozen: a resolved schema is shared between threads and swapped
as a whole on refresh, never edited in place.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ValueType = Literal["string", "float", "long", "boolean", "date", "array", "map"]

# Spellings accepted from older endpoints.
_TYPE_ALIASES = {"bool": "boolean", "int": "long", "integer": "long", "double": "float"}


def _normalise_type(v: object) -> object:
    if isinstance(v, str):
        v = v.lower()
        return _TYPE_ALIASES.get(v, v)
    return v


class RemoteField(BaseModel):
    """One declared field of a repo: key, type and required flag."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    key: str
    value_type: ValueType = Field(alias="valueType")
    required: bool = False
    # Element type of an array field.
    elem_type: ValueType | None = Field(default=None, alias="elemtype")
    # Nested fields of a map field.
    fields: tuple["RemoteField", ...] = Field(default=(), alias="schema")

    @field_validator("value_type", "elem_type", mode="before")
    @classmethod
    def _lower(cls, v: object) -> object:
        return _normalise_type(v)


class RemoteSchema(BaseModel):
    """Ordered set of fields declared by the remote repo."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    fields: tuple[RemoteField, ...] = Field(default=(), alias="schema")

    def get(self, key: str) -> RemoteField | None:
        """Return the field declared under *key*, or None."""
        for field in self.fields:
            if field.key == key:
                return field
        return None

    def keys(self) -> list[str]:
        return [field.key for field in self.fields]
