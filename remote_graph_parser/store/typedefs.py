# Copyright 2020-present Kensho Technologies, LLC.
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from .predicates import Predicate


@dataclass(frozen=True)
class Pointer:
    """A stored reference to the entity of the given kind with the given id."""

    kind: str
    id: str


@dataclass(frozen=True)
class RawEntityRecord:
    """One stored object, as returned by a remote store adapter.

    Attribute values are plain values, lists, or nested RawEntityRecord objects for references
    to other stored objects. A referenced object that was not eagerly included in the response
    is represented by a record that is not hydrated: it carries only its id and kind.

    Records are owned by the adapter response that produced them and must not be mutated.
    """

    id: str
    kind: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    hydrated: bool = True

    @classmethod
    def from_pointer(cls, pointer: Pointer) -> "RawEntityRecord":
        """Make a non-hydrated record standing for the pointed-to object."""
        return cls(pointer.id, pointer.kind, hydrated=False)

    def get(self, attribute_name: str, default: Any = None) -> Any:
        """Return the value of the named attribute, or the default if the record has none."""
        return self.attributes.get(attribute_name, default)

    def as_pointer(self) -> Pointer:
        """Return a reference to this record."""
        return Pointer(self.kind, self.id)


class RemoteStoreAdapter(metaclass=ABCMeta):
    """Base class defining the API through which the parser reads from a remote store.

    The parser itself knows nothing about any particular store: all store-aware operations go
    through the three-method API of this class, which should be subclassed to read from a new
    store. Long-lived state such as API keys or connection pools belongs on the subclass instance.

    All three methods are coroutines. The parser may call them concurrently, both for different
    entity kinds and for the same one, so implementations must not rely on being called one
    at a time.

    Predicates received by find() and count() are instances of the classes defined in
    the predicates module:
    - Select(field_names) is a pure optimization hint. The returned records must contain
      every named attribute that the stored object has, and may contain others as well.
    - Include(field_name) asks for the object referenced by that attribute to be returned
      hydrated, inlined in the same round-trip. References that were not included may be
      returned as non-hydrated records.
    - EqualTo(field_name, value) and GreaterThan(field_name, value) filter the matching objects.
      When the value of EqualTo is a RawEntityRecord or Pointer, the filter matches objects
      whose attribute references that same object.

    Implementations should raise StoreCallError for failures that they can describe;
    the parser wraps any other exception raised here into a StoreCallError.
    """

    @abstractmethod
    async def find(
        self, entity_kind: str, predicates: Sequence[Predicate]
    ) -> List[RawEntityRecord]:
        """Return the records of the given kind that match all the filtering predicates.

        Args:
            entity_kind: name of the kind of stored objects to look for
            predicates: Select, Include and filtering predicates that apply to this lookup

        Returns:
            list of matching records, in the store's order
        """

    @abstractmethod
    async def count(self, entity_kind: str, predicates: Sequence[Predicate]) -> int:
        """Return the number of objects of the given kind matching all the filtering predicates."""

    @abstractmethod
    async def get_by_id(self, entity_kind: str, entity_id: str) -> RawEntityRecord:
        """Return the hydrated record of the given kind with the given id.

        Raises:
            StoreCallError: if there is no such object
        """
