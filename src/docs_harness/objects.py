"""Objects for probing own/inherited property handling in documented schemas."""

from collections import ChainMap
from typing import Any, Iterator, Mapping


class LayeredMapping(ChainMap):
    """A mapping split into an own layer and inherited layers.

    ``maps[0]`` is the own layer, as in ``ChainMap``. Lookups fall through to
    the inherited layers, while ``own_keys()`` only reports what was set
    directly on this object.
    """

    @classmethod
    def from_inherited(cls, inherited: Mapping[str, Any], own: dict[str, Any] | None = None) -> "LayeredMapping":
        return cls(own if own is not None else {}, inherited)

    @property
    def own(self) -> dict[str, Any]:
        return self.maps[0]

    @property
    def inherited(self) -> ChainMap:
        return ChainMap(*self.maps[1:])

    def own_keys(self) -> Iterator[str]:
        return iter(self.own)

    def has_own(self, key: str) -> bool:
        return key in self.own


def obj_with_no_own_property() -> LayeredMapping:
    """Create an object whose properties are all inherited."""
    sides = {"a": 1, "b": 2, "c": 3}
    return LayeredMapping.from_inherited(sides)
